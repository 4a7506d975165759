"""HTTP delivery provider.

Posts the message as JSON to a provider endpoint (an email API or a relay
that speaks ``{id, to, subject, body}``).  Any non-2xx response, transport
error or timeout is a failed attempt.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from maildispatch.models import Message

from .base import BaseProvider, DeliveryError

logger = logging.getLogger(__name__)


class HttpProvider(BaseProvider):
    """Delivers messages by POSTing them to ``endpoint``."""

    def __init__(self, name: str, endpoint: str, timeout_seconds: float = 10.0,
                 headers: Optional[dict[str, str]] = None):
        super().__init__(name)
        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    **self._headers,
                }
            )
        return self._session

    async def _deliver(self, message: Message) -> None:
        session = await self._get_session()
        try:
            async with session.post(
                self._endpoint,
                json=message.to_wire(),
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise DeliveryError(self.name, f"HTTP {resp.status}: {body[:200]}")
        except asyncio.TimeoutError:
            raise DeliveryError(self.name, f"timed out after {self._timeout}s") from None
        except aiohttp.ClientError as e:
            raise DeliveryError(self.name, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
