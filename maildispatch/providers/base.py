"""Base provider interface for email delivery."""

from abc import ABC, abstractmethod
import logging

from maildispatch.models import Message

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A single delivery attempt failed.  Always treated as retryable."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} failed: {reason}")


class BaseProvider(ABC):
    """Base class for delivery providers.

    All providers must:
    1. Implement _deliver()
    2. Raise DeliveryError for any failed attempt
    3. Enforce their own transport timeout
    """

    def __init__(self, name: str):
        self.name = name
        self._call_count = 0
        self._error_count = 0

    async def send(self, message: Message) -> None:
        """Deliver *message* once.  Raises DeliveryError on failure."""
        self._call_count += 1
        logger.info(f"[{self.name}] Sending email id={message.id}")
        try:
            await self._deliver(message)
        except Exception:
            self._error_count += 1
            raise

    @abstractmethod
    async def _deliver(self, message: Message) -> None:
        """Perform one delivery attempt. Must be implemented by providers."""
        pass

    async def close(self) -> None:
        """Release transport resources.  No-op by default."""

    def get_stats(self) -> dict:
        return {
            "provider": self.name,
            "calls": self._call_count,
            "errors": self._error_count,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
