"""
ServiceHandle interface.

Defines the contract for one logical, possibly multi-instance remote
stateful service. The harness treats it as an opaque endpoint.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable


class ServiceHandle(ABC):
    """
    Abstract base class for the service under test.

    Implementations own their transport and must release it in ``close``.
    """

    @abstractmethod
    async def fetch_and_increment(self) -> int:
        """
        Return the current server-side counter value and increment it.

        Raises:
            Exception: Any failure of the remote call. The harness records
                it; it never stops the invocation driver.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying transport. Called exactly once."""
        pass


# Given an implementation identifier, acquire a handle bound to it.
ServiceFactory = Callable[[str], Awaitable[ServiceHandle]]
