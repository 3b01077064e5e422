"""Tag-listing clients for GitHub and GitLab REST APIs."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from magick_builder.retry import RETRY_DELAY, call_with_retry

log = structlog.get_logger("magick_builder.resolver")

_TIMEOUT = 30.0


class ServerError(httpx.HTTPStatusError):
    """5xx from a hosting API; retried once."""


class _HostingClient:
    """Thin sync wrapper around ``httpx.Client`` with the shared retry policy."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=_TIMEOUT,
            follow_redirects=True,
            transport=transport,
        )
        self._sleep = sleep
        self._retry_delay = retry_delay

    # ── lifecycle ──────────────────────────────────────────────────────────

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> _HostingClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── internal ───────────────────────────────────────────────────────────

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET with one retry on transport errors and 5xx responses."""

        def attempt() -> Any:
            resp = self._client.get(url, params=params)
            if resp.status_code >= 500:
                raise ServerError(f"{resp.status_code}", request=resp.request, response=resp)
            resp.raise_for_status()
            try:
                return resp.json()
            except ValueError as exc:
                # proxies and captive portals answer with HTML
                raise httpx.DecodingError(
                    f"{url} did not return JSON: {exc}", request=resp.request
                ) from exc

        return call_with_retry(
            attempt,
            retry_on=(httpx.TransportError, ServerError),
            label=f"GET {url}",
            delay=self._retry_delay,
            sleep=self._sleep,
        )


class GitHubClient(_HostingClient):
    """List tags of a github.com repository, newest first."""

    def __init__(
        self,
        user_agent: str,
        token: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": user_agent,
        }
        if token:
            headers["Authorization"] = f"token {token}"
        super().__init__(
            "https://api.github.com",
            headers,
            transport=transport,
            sleep=sleep,
            retry_delay=retry_delay,
        )

    def list_tags(self, repo: str, limit: int = 10) -> list[str]:
        data = self._get_json(f"/repos/{repo}/tags", params={"per_page": limit})
        names = [item["name"] for item in data if isinstance(item, dict) and "name" in item]
        log.debug("github.tags", repo=repo, count=len(names))
        return names


class GitLabClient(_HostingClient):
    """List tags of a GitLab project (by numeric id), most recently updated first."""

    def __init__(
        self,
        user_agent: str,
        host: str = "gitlab.freedesktop.org",
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self.host = host
        super().__init__(
            f"https://{host}/api/v4",
            {"User-Agent": user_agent},
            transport=transport,
            sleep=sleep,
            retry_delay=retry_delay,
        )

    def list_tags(self, project_id: str, limit: int = 10) -> list[str]:
        data = self._get_json(
            f"/projects/{project_id}/repository/tags",
            params={"per_page": limit, "order_by": "updated", "sort": "desc"},
        )
        names = [item["name"] for item in data if isinstance(item, dict) and "name" in item]
        log.debug("gitlab.tags", host=self.host, project=project_id, count=len(names))
        return names
