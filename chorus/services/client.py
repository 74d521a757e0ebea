"""
BackendClient - Authenticated async HTTP client for the storage/database backend.

One instance is bound to one access token. Instances are cheap to build and
are cached per token by ClientPool.
"""

from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from chorus.services.errors import (
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
)
from chorus.services.retry import RetryConfig, retry_with_backoff

if TYPE_CHECKING:
    from chorus.settings import Settings

SERVICE_ID = "backend"


class BackendClient:
    """
    HTTP client that authenticates every request with a bearer token.

    Usage:
        async with BackendClient(base_url, api_key, access_token) as client:
            clips = await client.request("GET", "/rest/v1/clips", params={"limit": 20})
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryConfig | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._timeout = timeout
        self._transport = transport
        self._retry = retry

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @property
    def access_token(self) -> str:
        return self._access_token

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            headers = {"Authorization": f"Bearer {self._access_token}"}
            if self._api_key:
                headers["apikey"] = self._api_key
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._http_client

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> Any:
        """
        Make a request to the backend.

        Transient failures are retried when the client was built with a
        RetryConfig.

        Raises:
            RequestTimeoutError: If the request times out
            RateLimitError: On HTTP 429
            ServiceUnavailableError: On HTTP 503
            ServiceError: For other HTTP or transport errors
        """

        async def do_request() -> Any:
            return await self._execute_request(method, path, params, json_data)

        if self._retry is None:
            return await do_request()

        return await retry_with_backoff(
            do_request,
            config=self._retry,
            on_retry=lambda attempt, error: logger.warning(
                f"Retrying {method} {path} (attempt {attempt}): {error}"
            ),
        )

    async def _execute_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        json_data: Any,
    ) -> Any:
        """Execute the actual HTTP request."""
        client = self._get_http_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json_data,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(SERVICE_ID, self._timeout) from e

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                retry_after = e.response.headers.get("Retry-After")
                raise RateLimitError(
                    SERVICE_ID,
                    float(retry_after) if retry_after and retry_after.isdigit() else None,
                ) from e
            if status_code == 503:
                raise ServiceUnavailableError(
                    f"HTTP 503: {e.response.text[:200]}", service_id=SERVICE_ID
                ) from e
            raise ServiceError(
                f"HTTP {status_code}: {e.response.text[:200]}",
                service_id=SERVICE_ID,
                status_code=status_code,
            ) from e

        except httpx.NetworkError as e:
            raise ServiceUnavailableError(
                f"Backend unreachable: {e}", service_id=SERVICE_ID
            ) from e

        except httpx.RequestError as e:
            raise ServiceError(str(e), service_id=SERVICE_ID) from e

        if not response.content:
            return None
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "BackendClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


class BackendClientFactory:
    """Builds BackendClient instances from settings. Used as a pool client_factory."""

    def __init__(
        self,
        settings: "Settings",
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryConfig | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._retry = retry or RetryConfig.from_settings(settings)

    def __call__(self, access_token: str) -> BackendClient:
        return BackendClient(
            base_url=self._settings.backend_url,
            api_key=self._settings.backend_api_key,
            access_token=access_token,
            timeout=self._settings.backend_timeout,
            transport=self._transport,
            retry=self._retry,
        )
