from typing import Any, Callable, Optional

import httpx

from tickethub.domain.errors import InvalidRequestError
from tickethub.domain.models import IntegrationProvider
from tickethub.domain.schemas import ExternalTicket, ProviderConfig, ProviderType
from tickethub.integrations.azure_devops.client import AzureDevOpsClient
from tickethub.integrations.azure_devops.mapper import map_azure_comment, map_azure_work_item
from tickethub.integrations.base import ProviderClient
from tickethub.integrations.jira.client import JiraClient
from tickethub.integrations.jira.mapper import map_jira_comment, map_jira_issue

CLIENTS: dict[ProviderType, Callable[..., ProviderClient]] = {
    ProviderType.JIRA: JiraClient,
    ProviderType.AZURE_DEVOPS: AzureDevOpsClient,
}

# (ticket mapper, comment mapper) per provider type
MAPPERS = {
    ProviderType.JIRA: (map_jira_issue, map_jira_comment),
    ProviderType.AZURE_DEVOPS: (map_azure_work_item, map_azure_comment),
}


def _provider_type(value) -> ProviderType:
    try:
        return ProviderType(value)
    except ValueError:
        raise InvalidRequestError(f"Unknown provider type: {value}")


def provider_config(provider: IntegrationProvider) -> ProviderConfig:
    return ProviderConfig(
        type=_provider_type(provider.type),
        base_url=provider.base_url or "",
        pat_token=provider.pat_token,
        username=provider.username,
        extra_config={k: str(v) for k, v in (provider.extra_config or {}).items()},
    )


def get_provider_client(config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> ProviderClient:
    return CLIENTS[config.type](config, transport=transport)


def map_ticket(
    provider_type: ProviderType,
    raw_ticket: dict[str, Any],
    raw_comments: list[dict[str, Any]],
    web_url: str,
) -> ExternalTicket:
    map_issue, map_comment = MAPPERS[_provider_type(provider_type)]
    external = map_issue(raw_ticket, web_url)
    external.comments = [map_comment(c) for c in raw_comments]
    return external
