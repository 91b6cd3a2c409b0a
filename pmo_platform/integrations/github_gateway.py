"""
GitHub REST API v3 Gateway.

All outbound HTTP calls to GitHub go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

  - Bearer token injected from ``GITHUB_TOKEN``
  - Timeout: ``GITHUB_TIMEOUT_SECONDS`` (default 15 s) on every call
  - No automatic retry: a failed call raises ``GitHubError`` with
    ``details["retryable"]`` set for timeouts / 5xx, the caller decides
  - Structured logging of every non-2xx response

Testability: pass a mock `session` to GitHubGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from flask import current_app, has_app_context

from pmo_platform.core.exceptions import AuthenticationError, GitHubError

logger = logging.getLogger(__name__)

_DEFAULT_API_URL = "https://api.github.com"
_DEFAULT_TIMEOUT = 15
_USER_AGENT = "PMO-Platform/1.0"

# Largest page size GitHub accepts for list endpoints
PAGE_SIZE = 100


class GitHubGateway:
    """GitHub REST API gateway.

    Instantiate once at module level (module-level singleton pattern).
    Settings are read from the Flask app config on every call unless given
    explicitly, so one instance serves every app created by the factory.

    Usage:
        from pmo_platform.integrations.github_gateway import github_gateway
        repo = github_gateway.get_repo("acme", "webshop")
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        api_url: str | None = None,
        token: str | None = None,
        timeout: int | None = None,
    ) -> None:
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session
        self._api_url = api_url
        self._token = token
        self._timeout = timeout

    def with_token(self, token: str) -> GitHubGateway:
        """Same gateway (and HTTP session) authenticated as a specific user."""
        return GitHubGateway(
            self.session, api_url=self._api_url, token=token, timeout=self._timeout,
        )

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Settings ─────────────────────────────────────────────────────────────

    def _setting(self, explicit: Any, key: str, default: Any) -> Any:
        if explicit is not None:
            return explicit
        if has_app_context():
            value = current_app.config.get(key)
            if value is not None:
                return value
        return default

    @property
    def api_url(self) -> str:
        return str(self._setting(self._api_url, "GITHUB_API_URL", _DEFAULT_API_URL)).rstrip("/")

    @property
    def timeout(self) -> int:
        return int(self._setting(self._timeout, "GITHUB_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT))

    def _headers(self) -> dict:
        token = self._setting(self._token, "GITHUB_TOKEN", None)
        if not token:
            raise AuthenticationError("GitHub token not configured")
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": _USER_AGENT,
        }

    # ── Core request dispatcher ───────────────────────────────────────────────

    def _do_request(
        self,
        method: str,
        url: str,
        headers: dict,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
    ) -> requests.Response:
        """Execute a single HTTP request, no error translation here."""
        kwargs: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        return self.session.request(method, url, **kwargs)

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        """Execute an authenticated request against the GitHub API.

        Args:
            method:     HTTP verb ("GET", "POST", "PATCH").
            endpoint:   Path below the API root, e.g. "/repos/acme/web".
            json_body:  JSON-serialisable request body (optional).
            params:     URL query params (optional).

        Returns:
            Parsed JSON body ({} for an empty 2xx response).

        Raises:
            AuthenticationError: No token configured.
            GitHubError: Timeout, network failure or non-2xx response.
        """
        headers = self._headers()
        url = f"{self.api_url}{endpoint}"

        t0 = time.perf_counter()
        try:
            resp = self._do_request(method, url, headers, json_body=json_body, params=params)
        except requests.Timeout:
            logger.warning("GitHub request timed out after %ss: %s %s", self.timeout, method, endpoint)
            raise GitHubError(
                f"Request timed out after {self.timeout}s",
                details={"endpoint": endpoint, "retryable": True},
            )
        except requests.RequestException as exc:
            logger.warning("GitHub network error: %s %s: %s", method, endpoint, exc)
            raise GitHubError(
                str(exc)[:500],
                details={"endpoint": endpoint, "retryable": True},
            ) from exc
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not resp.ok:
            message = _error_message(resp)
            logger.warning(
                "GitHub request failed status=%d %s %s (%dms): %s",
                resp.status_code, method, endpoint, duration_ms, message,
            )
            raise GitHubError(
                message,
                details={
                    "status": resp.status_code,
                    "endpoint": endpoint,
                    "retryable": resp.status_code >= 500,
                },
            )

        logger.debug("GitHub %s %s → %d (%dms)", method, endpoint, resp.status_code, duration_ms)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    # ── GitHub specific operations ────────────────────────────────────────────

    def get_repo(self, owner: str, repo: str) -> dict:
        """Fetch repository metadata; proves the token can see the repository."""
        return self.request("GET", f"/repos/{owner}/{repo}")

    def create_issue(self, owner: str, repo: str, payload: dict) -> dict:
        return self.request("POST", f"/repos/{owner}/{repo}/issues", json_body=payload)

    def update_issue(self, owner: str, repo: str, number: int, payload: dict) -> dict:
        return self.request("PATCH", f"/repos/{owner}/{repo}/issues/{number}", json_body=payload)

    def list_issues(self, owner: str, repo: str, state: str = "all") -> list[dict]:
        """Return every issue of the repository, walking all result pages.

        GitHub returns pull requests from this endpoint too; filtering them
        out is the caller's job.
        """
        issues: list[dict] = []
        page = 1
        while True:
            batch = self.request(
                "GET",
                f"/repos/{owner}/{repo}/issues",
                params={"state": state, "per_page": PAGE_SIZE, "page": page},
            )
            if not isinstance(batch, list):
                break
            issues.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1
        return issues


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code}: {resp.text[:200]}" if resp.text else f"HTTP {resp.status_code}"


# Module-level singleton (patched in tests)
github_gateway = GitHubGateway()
