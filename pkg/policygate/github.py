"""GitHub REST client for code scanning, issue comments and repository properties.

The only module that performs network I/O. Gates receive an explicitly constructed
client (anything satisfying ``RepositoryService``); tests inject an ``opener``.
"""

from __future__ import annotations

import http.client
import json
import re
import time
from typing import Any, Callable, Iterator, Mapping, Protocol
from urllib import error, request
from urllib.parse import quote, urlencode

from . import actions
from .errors import NotFoundError

HttpOpen = Callable[[request.Request, int], Any]

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_PAGE_SIZE = 100
MAX_RETRY_DELAY_SECONDS = 60
API_VERSION = "2022-11-28"
USER_AGENT = "policy-gates/0.1.0"

_LINK_NEXT = re.compile(r'<([^>]+)>\s*;\s*rel="next"')


class GitHubAPIError(Exception):
    """GitHub API returned an error response, or the request never completed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(GitHubAPIError):
    """Request was rate limited again after its single retry."""


class RepositoryService(Protocol):
    def list_findings(
        self, owner: str, repo: str, ref: str, severity: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[dict]:
        ...

    def list_recent_analyses(
        self, owner: str, repo: str, ref: str, tool_name: str, page_size: int = 1
    ) -> list[dict]:
        ...

    def list_issue_comments(
        self, owner: str, repo: str, issue_number: int, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[dict]:
        ...

    def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> dict:
        ...

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        ...

    def get_org_property(self, owner: str, repo: str, property_name: str) -> Any:
        ...


def _lower_headers(headers: Any) -> dict[str, str]:
    if not headers:
        return {}
    return {str(k).lower(): str(v) for k, v in headers.items()}


def _next_link(link_header: str | None) -> str | None:
    if not link_header:
        return None
    match = _LINK_NEXT.search(link_header)
    return match.group(1) if match else None


def _error_detail(exc: error.HTTPError) -> str:
    try:
        raw = exc.read()
    except Exception:
        return str(exc.reason)
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw or "")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text.strip() or str(exc.reason)
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return text.strip()


def _is_rate_limited(status: int, headers: Mapping[str, str], detail: str) -> bool:
    if status == 429:
        return True
    if status != 403:
        return False
    return (
        headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in headers
        or "rate limit" in detail.lower()
    )


def _segment(value: object) -> str:
    return quote(str(value), safe="")


class GitHubClient:
    """Minimal REST client. Retries a rate-limited request once, then gives up."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_URL,
        opener: HttpOpen | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        max_retry_delay: int = MAX_RETRY_DELAY_SECONDS,
    ) -> None:
        self._token = token
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self._opener = opener or _default_opener
        self._sleep = sleep
        self._clock = clock
        self.timeout_seconds = timeout_seconds
        self.max_retry_delay = max_retry_delay

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, path: str, params: Mapping[str, object] | None = None) -> str:
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        if params:
            query = urlencode({k: v for k, v in params.items() if v is not None})
            url = f"{url}{'&' if '?' in url else '?'}{query}"
        return url

    def _retry_delay(self, headers: Mapping[str, str]) -> int:
        retry_after = headers.get("retry-after")
        delay: float | None = None
        if retry_after is not None:
            try:
                delay = float(retry_after)
            except ValueError:
                delay = None
        if delay is None and headers.get("x-ratelimit-reset"):
            try:
                delay = float(headers["x-ratelimit-reset"]) - self._clock()
            except ValueError:
                delay = None
        if delay is None:
            delay = self.max_retry_delay
        return int(min(max(delay, 0), self.max_retry_delay))

    def _open(self, method: str, url: str, body: object | None) -> tuple[Any, dict[str, str]]:
        data = json.dumps(body).encode() if body is not None else None
        req = request.Request(url, data=data, method=method, headers=self._headers(data is not None))
        with self._opener(req, self.timeout_seconds) as response:
            headers = _lower_headers(getattr(response, "headers", None))
            raw = response.read()
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw or "")
        if not text.strip():
            return None, headers
        try:
            return json.loads(text), headers
        except json.JSONDecodeError as exc:
            raise GitHubAPIError(f"invalid JSON from {method} {url}: {exc}") from exc

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, object] | None = None,
        body: object | None = None,
    ) -> tuple[Any, dict[str, str]]:
        """Perform one API call and return ``(payload, lower-cased headers)``.

        Raises:
            NotFoundError: the remote answered 404.
            RateLimitError: limited on the first request and again on its retry.
            GitHubAPIError: any other HTTP or transport failure, including a
                truncated response body.
        """
        url = self._url(path, params)
        for attempt in range(2):
            try:
                return self._open(method, url, body)
            except error.HTTPError as exc:
                headers = _lower_headers(exc.headers)
                detail = _error_detail(exc)
                if _is_rate_limited(exc.code, headers, detail):
                    actions.warning(f"Request quota exhausted for request {method} {url}")
                    if attempt == 0:
                        delay = self._retry_delay(headers)
                        actions.info(f"Retrying after {delay} seconds!")
                        self._sleep(delay)
                        continue
                    raise RateLimitError(
                        f"rate limited twice for {method} {url}: {detail}", status=exc.code
                    ) from exc
                if exc.code == 404:
                    raise NotFoundError(f"{method} {url} returned 404: {detail}") from exc
                raise GitHubAPIError(
                    f"HTTP {exc.code} from {method} {url}: {detail}", status=exc.code
                ) from exc
            except error.URLError as exc:
                raise GitHubAPIError(f"Request failed for {method} {url}: {exc.reason}") from exc
            except (http.client.HTTPException, OSError) as exc:
                raise GitHubAPIError(f"Request failed for {method} {url}: {exc}") from exc

        # The loop must either return or raise.
        raise RuntimeError("request retry loop exited unexpectedly")

    def paginate(self, path: str, params: Mapping[str, object] | None = None) -> Iterator[dict]:
        """Yield items across pages, following ``Link: rel="next"`` in order."""
        url: str | None = self._url(path, params)
        while url:
            data, headers = self.request("GET", url)
            if data is None:
                return
            if not isinstance(data, list):
                raise GitHubAPIError(f"expected a JSON array from GET {url}")
            for item in data:
                yield item
            url = _next_link(headers.get("link"))

    def list_findings(
        self, owner: str, repo: str, ref: str, severity: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[dict]:
        return self.paginate(
            f"/repos/{_segment(owner)}/{_segment(repo)}/code-scanning/alerts",
            {"state": "open", "ref": ref, "severity": severity, "per_page": page_size},
        )

    def list_recent_analyses(
        self, owner: str, repo: str, ref: str, tool_name: str, page_size: int = 1
    ) -> list[dict]:
        data, _ = self.request(
            "GET",
            f"/repos/{_segment(owner)}/{_segment(repo)}/code-scanning/analyses",
            params={"ref": ref, "tool_name": tool_name, "per_page": page_size},
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise GitHubAPIError(f"expected a JSON array of analyses for {owner}/{repo}@{ref}")
        return data[:page_size]

    def list_issue_comments(
        self, owner: str, repo: str, issue_number: int, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[dict]:
        return self.paginate(
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}/comments",
            {"per_page": page_size},
        )

    def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> dict:
        data, _ = self.request(
            "POST",
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}/comments",
            body={"body": body},
        )
        return data if isinstance(data, dict) else {}

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        self.request(
            "DELETE",
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/comments/{int(comment_id)}",
        )

    def get_org_property(self, owner: str, repo: str, property_name: str) -> Any:
        """Return the value of a repository custom property, or None when it is not set."""
        data, _ = self.request(
            "GET", f"/repos/{_segment(owner)}/{_segment(repo)}/properties/values"
        )
        if not isinstance(data, list):
            return None
        for prop in data:
            if isinstance(prop, dict) and prop.get("property_name") == property_name:
                return prop.get("value")
        return None


def _default_opener(req: request.Request, timeout_seconds: int) -> Any:
    return request.urlopen(req, timeout=timeout_seconds)
