import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from tickethub.domain.schemas import ProviderConfig, SearchPage
from tickethub.integrations.base import basic_auth, build_http_client, raise_for_upstream

logger = logging.getLogger("azure_devops_client")

API_VERSION = "7.1"
COMMENTS_API_VERSION = "7.1-preview.4"
DEFAULT_HOST = "https://dev.azure.com"


class AzureDevOpsClient:
    provider = "Azure DevOps"

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.organization = config.extra_config.get("organization", "")
        self.project = config.extra_config.get("project", "")
        # PAT goes in as the password of an empty user
        self._http = build_http_client(config, {"Authorization": basic_auth("", config.pat_token)}, transport)

    async def __aenter__(self) -> "AzureDevOpsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def collection_url(self) -> str:
        host = (self.config.base_url or DEFAULT_HOST).rstrip("/")
        return f"{host}/{self.organization}" if self.organization else host

    @property
    def project_url(self) -> str:
        return f"{self.collection_url}/{quote(self.project)}"

    @property
    def web_url(self) -> str:
        return self.project_url

    async def fetch_ticket(self, external_id: str) -> dict[str, Any]:
        url = f"{self.project_url}/_apis/wit/workitems/{quote(external_id, safe='')}"
        res = await self._http.get(url, params={"$expand": "all", "api-version": API_VERSION})
        raise_for_upstream(res, self.provider, f"getWorkItem {external_id}")
        return res.json()

    async def fetch_comments(self, external_id: str) -> list[dict[str, Any]]:
        url = f"{self.project_url}/_apis/wit/workitems/{quote(external_id, safe='')}/comments"
        res = await self._http.get(url, params={"api-version": COMMENTS_API_VERSION})
        raise_for_upstream(res, self.provider, f"getWorkItemComments {external_id}")
        return res.json().get("comments") or []

    async def search_by_query(self, saved_query: str, page_token: Optional[str] = None) -> SearchPage:
        # WIQL answers with every matching id at once, there is no next page
        url = f"{self.project_url}/_apis/wit/wiql"
        res = await self._http.post(url, params={"api-version": API_VERSION}, json={"query": saved_query})
        raise_for_upstream(res, self.provider, "queryWorkItems")
        work_items = res.json().get("workItems") or []
        return SearchPage(ids=[str(wi["id"]) for wi in work_items])

    async def test_connection(self) -> bool:
        url = f"{self.collection_url}/_apis/projects/{quote(self.project)}"
        res = await self._http.get(url, params={"api-version": API_VERSION})
        raise_for_upstream(res, self.provider, "testConnection")
        return True
