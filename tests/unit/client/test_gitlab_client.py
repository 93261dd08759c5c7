"""Tests for the GitLab API client."""

from typing import TYPE_CHECKING

import httpx
import pytest
import respx
from httpx import Response
from pydantic import TypeAdapter

from glbt.gitlab_client import (
    USER_AGENT,
    ConfigError,
    DecodeError,
    GitLabClient,
    HttpStatusError,
    InvalidUrlError,
    TransportError,
)
from glbt.models import DetailedMergeStatus, StateEvent, User
from tests import factories

if TYPE_CHECKING:
    from respx import MockRouter

API_URL = factories.API_URL
MR_PATH = f"{API_URL}/projects/7/merge_requests/42"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://gitlab.example.com", "https://gitlab.example.com/api/v4/"),
        ("https://gitlab.example.com/", "https://gitlab.example.com/api/v4/"),
        ("http://localhost:8080", "http://localhost:8080/api/v4/"),
        ("https://example.com/gitlab/", "https://example.com/gitlab/api/v4/"),
    ],
)
def test_client_joins_base_url_with_api_root(url: str, expected: str) -> None:
    """Construction should normalize the base URL to the API root."""
    client = GitLabClient(url, "token")

    assert client.api_url == expected
    assert client.url == url


@pytest.mark.asyncio
async def test_requests_keep_base_url_sub_path(respx_mock: "MockRouter") -> None:
    """A GitLab served under a sub-path receives requests below that path."""
    route = respx_mock.get("https://example.com/gitlab/api/v4/user").mock(
        return_value=Response(200, json={"username": "alice"}),
    )
    client = GitLabClient("https://example.com/gitlab/", "token")

    async with client:
        user = await client.get_current_user()

    assert user.username == "alice"
    assert route.called
    assert str(route.calls.last.request.url) == "https://example.com/gitlab/api/v4/user"


@pytest.mark.parametrize("url", ["", "gitlab.example.com", "not a url", "ftp://gitlab.example.com", "https://"])
def test_client_rejects_malformed_urls(url: str) -> None:
    """Malformed URLs should fail at construction time without any request."""
    with respx.mock(assert_all_called=False) as router:
        with pytest.raises(InvalidUrlError) as excinfo:
            GitLabClient(url, "token")

    assert isinstance(excinfo.value, ConfigError)
    assert excinfo.value.url == url
    assert str(excinfo.value).startswith("URL is invalid:")
    assert not router.calls


def test_clients_compare_structurally() -> None:
    """Clients with the same endpoint and token should be interchangeable."""
    first = GitLabClient("https://gitlab.example.com", "token")
    second = GitLabClient("https://gitlab.example.com/", "token")
    other = GitLabClient("https://gitlab.example.com", "other")

    assert first == second
    assert hash(first) == hash(second)
    assert first != other
    assert str(first) == "gitlab.example.com"
    assert "token" not in repr(first)


@pytest.mark.asyncio
async def test_send_attaches_authorization_and_user_agent(
    client: GitLabClient,
    respx_mock: "MockRouter",
) -> None:
    """Every request should carry the bearer token and the fixed user agent."""
    route = respx_mock.get(f"{API_URL}/user").mock(return_value=Response(200, json={"username": "alice"}))

    async with client:
        user = await client.get_current_user()

    assert user == User(username="alice")
    request = route.calls.last.request
    assert request.headers["Authorization"] == f"Bearer {factories.TOKEN}"
    assert request.headers["User-Agent"] == USER_AGENT


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [300, 302, 400, 401, 404, 409, 422, 500, 503, 599])
async def test_send_reports_http_status_with_exact_body(
    client: GitLabClient,
    respx_mock: "MockRouter",
    status: int,
) -> None:
    """Statuses above 299 should raise HttpStatusError with the raw body."""
    body = '{"message": "nope"' if status % 2 else "plain text, not json"
    respx_mock.get(f"{API_URL}/user").mock(return_value=Response(status, text=body))

    async with client:
        with pytest.raises(HttpStatusError) as excinfo:
            await client.get_current_user()

    assert excinfo.value.status == status
    assert excinfo.value.body == body
    assert str(excinfo.value) == f"HTTP {status}: {body}"


@pytest.mark.asyncio
async def test_send_does_not_follow_redirects(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """A redirect should be reported as a failure instead of being followed."""
    respx_mock.get(f"{API_URL}/user").mock(
        return_value=Response(301, headers={"Location": "https://elsewhere.example.com/api/v4/user"}, text="moved"),
    )

    async with client:
        with pytest.raises(HttpStatusError) as excinfo:
            await client.get_current_user()

    assert excinfo.value.status == 301
    assert len(respx_mock.calls) == 1


@pytest.mark.asyncio
async def test_send_wraps_transport_failures(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """Failures before any response should raise TransportError."""
    respx_mock.get(f"{API_URL}/user").mock(side_effect=httpx.ConnectError("connection refused"))

    async with client:
        with pytest.raises(TransportError) as excinfo:
            await client.get_current_user()

    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["not json", '{"name": "missing username"}', "[]"])
async def test_send_reports_decode_errors(client: GitLabClient, respx_mock: "MockRouter", body: str) -> None:
    """Successful responses that do not match the expected shape should raise DecodeError."""
    respx_mock.get(f"{API_URL}/user").mock(return_value=Response(200, text=body))

    async with client:
        with pytest.raises(DecodeError):
            await client.get_current_user()


@pytest.mark.asyncio
async def test_send_decodes_into_requested_type(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """The generic send operation should validate against the given adapter."""
    respx_mock.get(f"{API_URL}/version").mock(return_value=Response(200, json={"version": "17.0.0"}))

    async with client:
        payload = await client.send("GET", "version", TypeAdapter(dict[str, str]))

    assert payload == {"version": "17.0.0"}


@pytest.mark.asyncio
async def test_list_open_merge_requests_uses_fixed_query(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """Listing should request one bounded page of open, non-draft merge requests."""
    route = respx_mock.get(
        f"{API_URL}/merge_requests",
        params={"per_page": "200", "scope": "all", "state": "opened", "wip": "no"},
    ).mock(
        return_value=Response(
            200,
            json=[factories.merge_request_payload(), factories.merge_request_payload(id=502, iid=43)],
        ),
    )

    async with client:
        merge_requests = await client.list_open_merge_requests()

    assert route.called
    assert dict(route.calls.last.request.url.params) == {
        "per_page": "200",
        "scope": "all",
        "state": "opened",
        "wip": "no",
    }
    assert [merge_request.iid for merge_request in merge_requests] == [42, 43]
    assert merge_requests[1].reference == "example/repo!43"


@pytest.mark.asyncio
async def test_get_merge_request(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """A single merge request should be fetched by project and iid."""
    respx_mock.get(MR_PATH).mock(
        return_value=Response(200, json=factories.merge_request_payload(detailed_merge_status="ci_still_running")),
    )

    async with client:
        merge_request = await client.get_merge_request(7, 42)

    assert merge_request.status is DetailedMergeStatus.CI_STILL_RUNNING


@pytest.mark.asyncio
async def test_get_latest_pipelines_filters_stale_commits(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """Only pipelines for the merge request's head sha should be returned, in order."""
    respx_mock.get(f"{MR_PATH}/pipelines").mock(
        return_value=Response(
            200,
            json=[
                factories.pipeline_payload(3, factories.HEAD_SHA, "running"),
                factories.pipeline_payload(2, factories.OLD_SHA, "failed"),
                factories.pipeline_payload(1, factories.HEAD_SHA, "success"),
            ],
        ),
    )

    async with client:
        pipelines = await client.get_latest_pipelines(factories.build_merge_request())

    assert [pipeline.id for pipeline in pipelines] == [3, 1]
    assert all(pipeline.sha == factories.HEAD_SHA for pipeline in pipelines)


@pytest.mark.asyncio
@pytest.mark.parametrize("event", list(StateEvent))
async def test_update_state_sends_state_event(
    client: GitLabClient,
    respx_mock: "MockRouter",
    event: StateEvent,
) -> None:
    """Close and reopen should PUT the matching state_event."""
    route = respx_mock.put(MR_PATH, params={"state_event": event.value}).mock(
        return_value=Response(200, json=factories.closed_payload()),
    )

    async with client:
        updated = await client.update_state(factories.build_merge_request(), event)

    assert route.called
    assert route.calls.last.request.url.params["state_event"] == event.value
    assert updated.status is DetailedMergeStatus.NOT_OPEN


@pytest.mark.asyncio
async def test_merge_sends_head_sha(client: GitLabClient, respx_mock: "MockRouter") -> None:
    """Merging should pin the last known sha and remove the source branch."""
    merged = factories.merge_request_payload(
        state="merged",
        detailed_merge_status="not_open",
        merged_at="2024-03-02T10:00:00Z",
    )
    route = respx_mock.put(f"{MR_PATH}/merge").mock(return_value=Response(200, json=merged))

    async with client:
        updated = await client.merge_merge_request(factories.build_merge_request())

    params = route.calls.last.request.url.params
    assert params["sha"] == factories.HEAD_SHA
    assert params["should_remove_source_branch"] == "true"
    assert updated.merged_at is not None
