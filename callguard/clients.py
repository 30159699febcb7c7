from typing import Any, Dict, Optional
import httpx
import logging

from .core.invoker import ResilientInvoker

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

def is_retryable_http_error(error: BaseException) -> bool:
    """Transport failures and overload/server status codes are worth retrying."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, httpx.TransportError)

class ResilientServiceClient:
    """JSON client for one upstream service, routed through a ResilientInvoker."""

    def __init__(
        self,
        base_url: str,
        invoker: ResilientInvoker,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.invoker = invoker
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    async def get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None
    ) -> Any:
        """GET a JSON document, served from the result cache when fresh."""
        url = self._url(endpoint)
        request = self._client.build_request('GET', url, params=params)
        key = ('GET', str(request.url))

        async def call() -> Any:
            return await self._request('GET', url, params=params)

        return await self.invoker.execute(key, call, ttl=ttl)

    async def post_json(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        """POST a JSON body. Results are never cached."""
        url = self._url(endpoint)

        async def call() -> Any:
            return await self._request('POST', url, json=payload)

        return await self.invoker.execute(('POST', url), call, use_cache=False)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ResilientServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
