import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from tickethub.domain.schemas import ProviderConfig, SearchPage
from tickethub.integrations.base import basic_auth, build_http_client, raise_for_upstream

logger = logging.getLogger("jira_client")

SEARCH_PAGE_SIZE = 50


class JiraClient:
    """Jira REST client.

    Cloud serves REST v3 (ADF bodies, token-paged search); Server/Data Center
    only has v2 (wiki text bodies, offset-paged search). The version is probed
    once per instance with ``/rest/api/3/myself`` and cached.
    """

    provider = "Jira"

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        if config.username:
            auth = basic_auth(config.username, config.pat_token)
        else:
            # no username: treat the token as a Data Center PAT and send it as a bearer token.
            # Cloud and username:PAT setups take the basic auth branch above.
            auth = f"Bearer {config.pat_token}"
        self._http = build_http_client(config, {"Authorization": auth}, transport)
        self._api_version: Optional[int] = None

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def web_url(self) -> str:
        return self.base_url

    async def api_version(self) -> int:
        if self._api_version is None:
            res = await self._http.get(f"{self.base_url}/rest/api/3/myself")
            if res.status_code == 404:
                self._api_version = 2
            else:
                raise_for_upstream(res, self.provider, "detect API version")
                self._api_version = 3
            logger.info("Jira %s speaks REST v%s", self.base_url, self._api_version)
        return self._api_version

    async def _url(self, path: str) -> str:
        version = await self.api_version()
        return f"{self.base_url}/rest/api/{version}/{path}"

    async def fetch_ticket(self, external_id: str) -> dict[str, Any]:
        url = await self._url(f"issue/{quote(external_id, safe='')}")
        res = await self._http.get(url, params={"expand": "renderedFields"})
        raise_for_upstream(res, self.provider, f"getIssue {external_id}")
        return res.json()

    async def fetch_comments(self, external_id: str) -> list[dict[str, Any]]:
        url = await self._url(f"issue/{quote(external_id, safe='')}/comment")
        res = await self._http.get(url)
        raise_for_upstream(res, self.provider, f"getIssueComments {external_id}")
        return res.json().get("comments") or []

    async def search_by_query(self, saved_query: str, page_token: Optional[str] = None) -> SearchPage:
        if await self.api_version() == 3:
            return await self._search_v3(saved_query, page_token)
        return await self._search_v2(saved_query, page_token)

    async def _search_v3(self, jql: str, page_token: Optional[str]) -> SearchPage:
        body: dict[str, Any] = {"jql": jql, "maxResults": SEARCH_PAGE_SIZE, "fields": ["key"]}
        if page_token:
            body["nextPageToken"] = page_token
        res = await self._http.post(f"{self.base_url}/rest/api/3/search/jql", json=body)
        raise_for_upstream(res, self.provider, "searchIssues")
        data = res.json()
        keys = [issue["key"] for issue in data.get("issues") or []]
        return SearchPage(ids=keys, next_page_token=data.get("nextPageToken") or None)

    async def _search_v2(self, jql: str, page_token: Optional[str]) -> SearchPage:
        start_at = int(page_token or 0)
        body = {"jql": jql, "startAt": start_at, "maxResults": SEARCH_PAGE_SIZE, "fields": ["key"]}
        res = await self._http.post(f"{self.base_url}/rest/api/2/search", json=body)
        raise_for_upstream(res, self.provider, "searchIssues")
        data = res.json()
        issues = data.get("issues") or []
        next_start = start_at + len(issues)
        has_more = bool(issues) and next_start < int(data.get("total", 0))
        return SearchPage(
            ids=[issue["key"] for issue in issues],
            next_page_token=str(next_start) if has_more else None,
        )

    async def test_connection(self) -> bool:
        res = await self._http.get(await self._url("myself"))
        raise_for_upstream(res, self.provider, "testConnection")
        return True
