"""
HTTP+JSON transport for the directory and inventory services.

All clients share one ``aiohttp.ClientSession`` owned by ``HttpTransport``.
Requests are never retried here; retry policy belongs to the poll scheduler.
Every network, status or decoding failure is raised as ``TransportError``.
"""

import asyncio
import builtins
import logging
from typing import Any

import aiohttp

from .config import HTTPClientConfig
from .errors import TransportError

logger = logging.getLogger(__name__)


class HttpTransport:
    """Owns the shared HTTP session used by every JSON client."""

    def __init__(self, config: HTTPClientConfig | None = None):
        self.config = config or HTTPClientConfig()
        self._http_session: aiohttp.ClientSession | None = None
        self._timeout = aiohttp.ClientTimeout(
            total=self.config.request_timeout,
            connect=self.config.connect_timeout,
        )

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=aiohttp.TCPConnector(
                    limit=self.config.max_connections,
                    limit_per_host=self.config.max_connections_per_host,
                ),
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
            )
        return self._http_session

    def client(self, base_url: str) -> "JsonClient":
        return JsonClient(base_url, self)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
            self._http_session = None


class JsonClient:
    """Read-only JSON client bound to one base URL."""

    def __init__(self, base_url: str, transport: HttpTransport):
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def __repr__(self) -> str:
        return f"JsonClient({self.base_url!r})"

    async def get_json(self, path: str, params: builtins.dict[str, str] | None = None) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        session = await self.transport.get_session()

        try:
            async with session.get(url, params=params) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    raise TransportError(
                        f"GET {url} failed with status {response.status}: {error_text[:200]}",
                        url=url,
                        status=response.status,
                    )
                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise TransportError(f"GET {url} failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"GET {url} timed out", url=url) from e
        except ValueError as e:
            raise TransportError(f"GET {url} returned invalid JSON: {e}", url=url) from e


class LocationClients:
    """Lazily created inventory clients, at most one per location."""

    def __init__(self, transport: HttpTransport, url_for_location):
        self.transport = transport
        self._url_for_location = url_for_location
        self._clients: builtins.dict[str, JsonClient] = {}

    def get(self, location: str) -> JsonClient:
        client = self._clients.get(location)
        if client is None:
            client = self.transport.client(self._url_for_location(location))
            self._clients[location] = client
            logger.debug("Created inventory client for %s at %s", location, client.base_url)
        return client

    def __contains__(self, location: str) -> bool:
        return location in self._clients

    def __len__(self) -> int:
        return len(self._clients)
