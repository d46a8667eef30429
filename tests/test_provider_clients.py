import json

import httpx
import pytest

from tickethub.domain.errors import UpstreamApiError
from tickethub.domain.schemas import ProviderConfig, ProviderType
from tickethub.integrations.azure_devops.client import AzureDevOpsClient
from tickethub.integrations.jira.client import JiraClient
from tickethub.integrations.registry import get_provider_client


def jira_config(**extra) -> ProviderConfig:
    return ProviderConfig(
        type=ProviderType.JIRA, base_url="https://jira.example.com/", pat_token="tok", username="ann", **extra
    )


class TestJiraClient:
    @pytest.mark.asyncio
    async def test_cloud_search_follows_next_page_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/rest/api/3/myself":
                return httpx.Response(200, json={"accountId": "1"})
            assert request.url.path == "/rest/api/3/search/jql"
            body = json.loads(request.content)
            seen.append(body.get("nextPageToken"))
            if "nextPageToken" not in body:
                return httpx.Response(200, json={"issues": [{"key": "A-1"}], "nextPageToken": "p2"})
            return httpx.Response(200, json={"issues": [{"key": "A-2"}]})

        async with JiraClient(jira_config(), transport=httpx.MockTransport(handler)) as client:
            first = await client.search_by_query("assignee = currentUser()")
            second = await client.search_by_query("assignee = currentUser()", first.next_page_token)

        assert first.ids == ["A-1"] and first.next_page_token == "p2"
        assert second.ids == ["A-2"] and second.next_page_token is None
        assert seen == [None, "p2"]

    @pytest.mark.asyncio
    async def test_server_falls_back_to_v2_offsets(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/rest/api/3/myself":
                return httpx.Response(404)
            if request.url.path == "/rest/api/2/search":
                body = json.loads(request.content)
                keys = ["B-1", "B-2"] if body["startAt"] == 0 else ["B-3"]
                return httpx.Response(200, json={"issues": [{"key": k} for k in keys], "total": 3})
            if request.url.path == "/rest/api/2/issue/B-1":
                assert request.url.params["expand"] == "renderedFields"
                return httpx.Response(200, json={"key": "B-1", "fields": {}})
            return httpx.Response(500)

        async with JiraClient(jira_config(), transport=httpx.MockTransport(handler)) as client:
            page = await client.search_by_query("project = B")
            last = await client.search_by_query("project = B", page.next_page_token)
            issue = await client.fetch_ticket("B-1")

        assert page.ids == ["B-1", "B-2"] and page.next_page_token == "2"
        assert last.ids == ["B-3"] and last.next_page_token is None
        assert issue["key"] == "B-1"
        # version probed once
        assert paths.count("/rest/api/3/myself") == 1

    @pytest.mark.asyncio
    async def test_non_success_raises_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/myself"):
                return httpx.Response(200, json={})
            return httpx.Response(403, text="You do not have permission")

        async with JiraClient(jira_config(), transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamApiError) as exc_info:
                await client.fetch_comments("X-1")

        assert exc_info.value.status_code == 403
        assert "permission" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_bearer_auth_without_username(self):
        auth_headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth_headers.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        config = ProviderConfig(type=ProviderType.JIRA, base_url="https://jira.local", pat_token="pat")
        async with JiraClient(config, transport=httpx.MockTransport(handler)) as client:
            assert await client.test_connection() is True

        assert auth_headers and all(h == "Bearer pat" for h in auth_headers)


class TestAzureDevOpsClient:
    def config(self) -> ProviderConfig:
        return ProviderConfig(
            type=ProviderType.AZURE_DEVOPS,
            pat_token="pat",
            extra_config={"organization": "acme", "project": "Web Shop"},
        )

    @pytest.mark.asyncio
    async def test_wiql_returns_all_ids(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "dev.azure.com"
            assert request.url.path == "/acme/Web Shop/_apis/wit/wiql"
            assert json.loads(request.content)["query"].startswith("SELECT [System.Id]")
            return httpx.Response(200, json={"workItems": [{"id": 5}, {"id": 9}]})

        async with get_provider_client(self.config(), transport=httpx.MockTransport(handler)) as client:
            assert isinstance(client, AzureDevOpsClient)
            page = await client.search_by_query("SELECT [System.Id] FROM WorkItems")

        assert page.ids == ["5", "9"]
        assert page.next_page_token is None

    @pytest.mark.asyncio
    async def test_comments_use_preview_api(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["api-version"] == "7.1-preview.4"
            return httpx.Response(200, json={"comments": [{"id": 1, "text": "<p>hi</p>"}]})

        async with AzureDevOpsClient(self.config(), transport=httpx.MockTransport(handler)) as client:
            comments = await client.fetch_comments("5")

        assert comments == [{"id": 1, "text": "<p>hi</p>"}]
        assert client.web_url == "https://dev.azure.com/acme/Web%20Shop"
