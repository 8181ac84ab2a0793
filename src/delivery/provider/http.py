"""Shared HTTP plumbing for network-backed provider adapters."""

import httpx
import structlog

from delivery.delivery.exceptions import ProviderError
from delivery.provider.port import ProviderAdapter, ProviderSettings

logger = structlog.get_logger(__name__)

# Worth another attempt; every other 4xx is a permanent rejection
RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


class HttpProviderAdapter(ProviderAdapter):
    """Adapter base that owns an ``httpx.AsyncClient`` for one provider API."""

    base_url: str

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        settings: ProviderSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(settings)
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=DEFAULT_TIMEOUT,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[ProviderError],
        json: dict | None = None,
    ) -> httpx.Response:
        """Send a request and translate transport failures into ``error_cls``.

        Non-2xx responses are returned to the caller, which knows the
        provider's error vocabulary.
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise error_cls(self.provider, f"Timed out calling {path}") from exc
        except httpx.TransportError as exc:
            raise error_cls(self.provider, f"Network error calling {path}: {exc}") from exc

        logger.debug(
            "Provider API call",
            provider=self.provider,
            method=method,
            path=path,
            status_code=response.status_code,
        )
        return response

    def _raise_for_status(self, response: httpx.Response, error_cls: type[ProviderError], message: str) -> None:
        if response.is_success:
            return
        raise error_cls(
            self.provider,
            f"{message}: HTTP {response.status_code} {_error_detail(response)}".strip(),
            retryable=response.status_code in RETRYABLE_STATUS_CODES,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("code") or body.get("error") or "")
    return ""


def error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("code")
    return None
