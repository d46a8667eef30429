import os
import base64
import logging
from typing import Any, Optional, Protocol

import httpx

from tickethub.domain.errors import UpstreamApiError
from tickethub.domain.schemas import ProviderConfig, SearchPage

logger = logging.getLogger("integrations")

HTTP_TIMEOUT_SECONDS = float(os.getenv("TICKETHUB_HTTP_TIMEOUT", "30"))


class ProviderClient(Protocol):
    """Capabilities every tracker client offers to the ticket store."""

    config: ProviderConfig

    @property
    def web_url(self) -> str: ...

    async def fetch_ticket(self, external_id: str) -> dict[str, Any]: ...

    async def fetch_comments(self, external_id: str) -> list[dict[str, Any]]: ...

    async def search_by_query(self, saved_query: str, page_token: Optional[str] = None) -> SearchPage: ...

    async def test_connection(self) -> bool: ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> "ProviderClient": ...

    async def __aexit__(self, *exc_info) -> None: ...


def basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def build_http_client(
    config: ProviderConfig,
    headers: dict[str, str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    # Self-hosted trackers often sit behind a corporate proxy with a self-signed cert.
    if config.skip_ssl:
        logger.warning("TLS verification disabled for %s", config.base_url or config.type.value)
    kwargs: dict[str, Any] = {
        "headers": {"Content-Type": "application/json", "Accept": "application/json", **headers},
        "timeout": httpx.Timeout(HTTP_TIMEOUT_SECONDS, connect=10.0),
        "verify": not config.skip_ssl,
        "trust_env": True,
    }
    if transport is not None:
        kwargs["transport"] = transport
    elif config.proxy:
        kwargs["proxy"] = config.proxy
    return httpx.AsyncClient(**kwargs)


def raise_for_upstream(response: httpx.Response, provider: str, context: str) -> None:
    if response.is_success:
        return
    raise UpstreamApiError(
        provider=provider,
        context=context,
        status_code=response.status_code,
        reason=response.reason_phrase,
        body=response.text,
    )
