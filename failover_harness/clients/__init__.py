"""
HTTP implementations of the harness interfaces.

- HttpCounterService: counter service exposed over HTTP
- ManagementTopologyController: node control through a domain management API
"""

from failover_harness.clients.http_service import HttpCounterService, http_service_factory
from failover_harness.clients.management import ManagementTopologyController

__all__ = [
    "HttpCounterService",
    "ManagementTopologyController",
    "http_service_factory",
]
