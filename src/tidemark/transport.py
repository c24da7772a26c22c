from collections.abc import AsyncIterator
import logging

import httpx

from tidemark.errors import TransportError
from tidemark.message import Message
from tidemark.settings import Settings

logger = logging.getLogger(__name__)


class LineTransport:
    """Source of response lines for one exchange.

    Implementations yield the response body line by line and raise
    :class:`~tidemark.errors.TransportError` when the stream fails.
    """

    def stream_lines(self, messages: list[Message]) -> AsyncIterator[str]:
        raise NotImplementedError


class HttpLineTransport(LineTransport):
    """POSTs the conversation to a local chat backend and streams lines.

    Args:
        base_url: Backend root, e.g. ``http://localhost:7452``.
        chat_path: Path of the streaming chat endpoint.
        timeout: Per-operation httpx timeout in seconds.  The whole
            exchange is bounded separately by the Runner.
        client: Optional shared ``httpx.AsyncClient``.  When omitted a
            client is created and closed for every exchange.
    """

    def __init__(
            self,
            base_url: str = "http://localhost:7452",
            chat_path: str = "/chat",
            timeout: float = 300.0,
            client: httpx.AsyncClient | None = None,
    ):
        self.url = f"{base_url.rstrip('/')}/{chat_path.lstrip('/')}"
        self.timeout = timeout
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpLineTransport":
        return cls(
            base_url=settings.base_url,
            chat_path=settings.chat_path,
            timeout=settings.timeout,
        )

    async def stream_lines(self, messages: list[Message]) -> AsyncIterator[str]:
        payload = {"messages": [m.model_dump() for m in messages]}
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream("POST", self.url, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise TransportError(
                        f"Chat backend returned {response.status_code}: "
                        f"{body.decode(errors='ignore')[:200]}"
                    )
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            logger.error(f"Transport failure talking to {self.url}: {e}")
            raise TransportError(f"Error communicating with {self.url}") from e
        finally:
            if self.client is None:
                await client.aclose()
