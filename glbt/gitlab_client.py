"""Async GitLab API client with a typed error taxonomy."""

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any, Self, TypeVar

import httpx
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from glbt import __version__
from glbt.models import MergeRequest, Pipeline, StateEvent, User

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

API_ROOT = "api/v4/"
USER_AGENT = f"glbt/{__version__}"
MERGE_REQUEST_PAGE_SIZE = 200
_LAST_SUCCESS_STATUS = 299

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)
_USER_ADAPTER = TypeAdapter(User)
_MERGE_REQUEST_ADAPTER = TypeAdapter(MergeRequest)
_MERGE_REQUEST_LIST_ADAPTER = TypeAdapter(list[MergeRequest])
_PIPELINE_LIST_ADAPTER = TypeAdapter(list[Pipeline])


class GitLabError(RuntimeError):
    """Base class for every error raised by the GitLab client."""


class ConfigError(GitLabError):
    """Raised when the client cannot be configured."""


class InvalidUrlError(ConfigError):
    """Raised when the GitLab base URL cannot be parsed."""

    def __init__(self, url: str, reason: str) -> None:
        """Keep the rejected URL for error reporting."""
        super().__init__(f"URL is invalid: {reason}")
        self.url = url


class FetchError(GitLabError):
    """Base class for failures while talking to the GitLab API."""


class TransportError(FetchError):
    """Raised when a request failed before any response was received."""

    def __init__(self, message: str) -> None:
        """Prefix the transport failure with a stable message."""
        super().__init__(f"Failed to send request: {message}")


class HttpStatusError(FetchError):
    """Raised when GitLab answers with a status above 299."""

    def __init__(self, status: int, body: str) -> None:
        """Store the status code and the verbatim response body."""
        super().__init__(f"HTTP {status}: {body}")
        self.status = status
        self.body = body


class DecodeError(FetchError):
    """Raised when a successful response does not match the expected shape."""

    def __init__(self, message: str) -> None:
        """Prefix the validation failure with a stable message."""
        super().__init__(f"Failed to deserialize body: {message}")


def build_api_url(url: str) -> str:
    """Validate ``url`` and return it joined with the API root."""
    try:
        parsed = _URL_ADAPTER.validate_python(url)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"] if exc.errors() else str(exc)
        raise InvalidUrlError(url, reason) from exc
    return str(httpx.URL(str(parsed)).join(API_ROOT))


class GitLabClient:
    """Authenticated asynchronous client for the GitLab REST API v4.

    Two clients built from the same URL and token compare equal. Redirects are
    never followed, so every request talks to exactly one host.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        timeout: float | None = None,
        user_agent: str = USER_AGENT,
    ) -> None:
        """Validate the base URL and prepare the underlying HTTP client."""
        self._url = url
        self._api_url = build_api_url(url)
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "User-Agent": user_agent,
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )

    @property
    def url(self) -> str:
        """Base URL as supplied by the operator."""
        return self._url

    @property
    def api_url(self) -> str:
        """Base URL joined with the API root."""
        return self._api_url

    @property
    def token(self) -> str:
        """Bearer credential used for every request."""
        return self._token

    @property
    def host(self) -> str:
        """Host name of the GitLab instance."""
        return httpx.URL(self._api_url).host

    def __eq__(self, other: object) -> bool:
        """Compare clients by endpoint and credential."""
        if not isinstance(other, GitLabClient):
            return NotImplemented
        return (self._api_url, self._token) == (other._api_url, other._token)

    def __hash__(self) -> int:
        """Hash consistently with equality."""
        return hash((self._api_url, self._token))

    def __str__(self) -> str:
        """Render the client as its host name."""
        return self.host

    def __repr__(self) -> str:
        """Avoid leaking the token in debug output."""
        return f"GitLabClient({self._api_url!r})"

    async def __aenter__(self) -> Self:
        """Enter the async context manager and return the client."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Ensure the underlying HTTP client is closed when exiting the context."""
        del exc_type, exc, tb
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def send(
        self,
        method: str,
        path: str,
        response_type: TypeAdapter[T],
        *,
        params: Mapping[str, Any] | None = None,
    ) -> T:
        """Perform a request and decode the body into ``response_type``.

        Raises:
            TransportError: no response was received.
            HttpStatusError: the status code is above 299.
            DecodeError: the body does not validate against ``response_type``.
        """
        LOGGER.debug("%s %s params=%s", method, path, params)
        try:
            response = await self._client.request(method, path, params=params)
        except httpx.RequestError as exc:
            LOGGER.warning("Request %s %s failed: %s", method, path, exc)
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if response.status_code > _LAST_SUCCESS_STATUS:
            body = response.text
            LOGGER.warning("GitLab API returned %s for %s %s", response.status_code, method, path)
            raise HttpStatusError(response.status_code, body)

        try:
            return response_type.validate_json(response.content)
        except ValidationError as exc:
            LOGGER.warning("Unexpected payload for %s %s: %s", method, path, exc)
            raise DecodeError(str(exc)) from exc

    async def get_current_user(self) -> User:
        """Fetch the currently authenticated user."""
        return await self.send("GET", "user", _USER_ADAPTER)

    async def list_open_merge_requests(self) -> list[MergeRequest]:
        """Return open, non-draft merge requests visible to the user.

        Only a single page is requested; results beyond it are not fetched.
        """
        params = {
            "per_page": MERGE_REQUEST_PAGE_SIZE,
            "scope": "all",
            "state": "opened",
            "wip": "no",
        }
        return await self.send("GET", "merge_requests", _MERGE_REQUEST_LIST_ADAPTER, params=params)

    async def get_merge_request(self, project_id: int, iid: int) -> MergeRequest:
        """Fetch a single merge request."""
        return await self.send("GET", f"projects/{project_id}/merge_requests/{iid}", _MERGE_REQUEST_ADAPTER)

    async def get_latest_pipelines(self, merge_request: MergeRequest) -> list[Pipeline]:
        """Return the pipelines that ran against the merge request's head commit."""
        pipelines = await self.send("GET", f"{_merge_request_path(merge_request)}/pipelines", _PIPELINE_LIST_ADAPTER)
        return [pipeline for pipeline in pipelines if pipeline.sha == merge_request.sha]

    async def update_state(self, merge_request: MergeRequest, event: StateEvent) -> MergeRequest:
        """Close or reopen a merge request and return the server's representation."""
        LOGGER.info("Applying %s to %s", event.value, merge_request.reference)
        return await self.send(
            "PUT",
            _merge_request_path(merge_request),
            _MERGE_REQUEST_ADAPTER,
            params={"state_event": event.value},
        )

    async def merge_merge_request(self, merge_request: MergeRequest) -> MergeRequest:
        """Merge a merge request at its last known head commit."""
        LOGGER.info("Merging %s at %s", merge_request.reference, merge_request.sha)
        return await self.send(
            "PUT",
            f"{_merge_request_path(merge_request)}/merge",
            _MERGE_REQUEST_ADAPTER,
            params={"sha": merge_request.sha, "should_remove_source_branch": "true"},
        )


def _merge_request_path(merge_request: MergeRequest) -> str:
    return f"projects/{merge_request.project_id}/merge_requests/{merge_request.iid}"
