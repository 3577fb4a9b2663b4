"""GitHub REST client for repository collaborator operations."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .errors import ConfigurationError, RemoteAPIError, RemoteAuthError, RemoteConnectionError
from .models import Permission
from .repository import RepositoryRef

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class ChangeResult(str, enum.Enum):
    """How GitHub answered a mutating call."""

    APPLIED = "applied"
    NOOP = "noop"  # already a collaborator / not a collaborator


class CollaboratorClient(Protocol):
    """Operations the reconciliation engine needs from a repository host."""

    def authenticated_login(self) -> str:
        ...

    def get_repository(self, repo: RepositoryRef) -> dict[str, Any]:
        ...

    def list_collaborators(self, repo: RepositoryRef) -> set[str]:
        ...

    def add_collaborator(self, repo: RepositoryRef, username: str, permission: Permission) -> ChangeResult:
        ...

    def remove_collaborator(self, repo: RepositoryRef, username: str) -> ChangeResult:
        ...


@dataclass(frozen=True)
class GitHubConfig:
    """Connection settings for the GitHub REST API."""

    token: str
    api_url: str = DEFAULT_API_URL
    timeout_s: float = 30.0
    user_agent: str = "teamsync"
    api_version: str = "2022-11-28"


def _error_details(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text.strip()[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return resp.text.strip()[:200]


class GitHubCollaboratorClient:
    """Collaborator operations against one GitHub API endpoint.

    Every call is independent; nothing is cached between calls. Pass an
    ``http_client`` to share a connection pool (or a mock transport in tests);
    the client only closes connections it opened itself.
    """

    def __init__(self, config: GitHubConfig, *, http_client: httpx.Client | None = None) -> None:
        if not config.token.strip():
            raise ConfigurationError.missing_token()
        self._config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=config.timeout_s)
        self._headers = {
            "Authorization": f"Bearer {config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": config.api_version,
            "User-Agent": config.user_agent,
        }

    def __enter__(self) -> GitHubCollaboratorClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._config.api_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        what: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        allow: tuple[int, ...] = (),
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            resp = self._http.request(
                method,
                self._url(path),
                headers=self._headers,
                params=params,
                json=payload,
                timeout=self._config.timeout_s,
            )
        except httpx.RequestError as exc:
            raise RemoteConnectionError(f"Network error while trying to {what}: {exc}") from exc

        if resp.status_code in allow:
            return resp
        if resp.status_code == 401:
            raise RemoteAuthError.http_error(resp.status_code, what, _error_details(resp))
        if resp.is_error:
            raise RemoteAPIError.http_error(resp.status_code, what, _error_details(resp))
        return resp

    def _paginate(self, path: str, *, what: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: str | None = path
        page_params = {"per_page": 100, **(params or {})}
        while url:
            resp = self._request("GET", url, what=what, params=page_params)
            try:
                page = resp.json()
            except ValueError as exc:
                raise RemoteAPIError(f"Unexpected non-JSON response while trying to {what}") from exc
            if not isinstance(page, list):
                raise RemoteAPIError(f"Unexpected response shape while trying to {what}")
            items.extend(page)
            url = resp.links.get("next", {}).get("url")
            # The next link already carries the query string.
            page_params = None
        return items

    # -------------------------------------------------------------------------
    # Collaborator operations
    # -------------------------------------------------------------------------

    def authenticated_login(self) -> str:
        """Return the login that owns the token, verifying the credential."""
        resp = self._request("GET", "user", what="resolve authenticated user")
        login = resp.json().get("login")
        if not login:
            raise RemoteAPIError("GitHub did not report a login for the authenticated user")
        return login

    def get_repository(self, repo: RepositoryRef) -> dict[str, Any]:
        return self._request("GET", repo.api_path, what=f"look up repository {repo}").json()

    def _pending_invitations(self, repo: RepositoryRef) -> dict[str, tuple[str, int]]:
        """Map case-folded invitee logins to ``(login, invitation_id)``.

        Listing invitations needs admin rights on the repository; when GitHub
        refuses it (403 or 404) we carry on as if nothing were pending. Any
        other failure propagates.
        """
        try:
            items = self._paginate(f"{repo.api_path}/invitations", what=f"list pending invitations for {repo}")
        except (RemoteAuthError, RemoteConnectionError):
            raise
        except RemoteAPIError as exc:
            if exc.status_code not in (403, 404):
                raise
            logger.warning("Could not list pending invitations for %s: %s", repo, exc)
            return {}

        pending: dict[str, tuple[str, int]] = {}
        for item in items:
            login = (item.get("invitee") or {}).get("login")
            if login and item.get("id") is not None:
                pending[login.casefold()] = (login, item["id"])
        return pending

    def list_collaborators(self, repo: RepositoryRef) -> set[str]:
        """Return direct collaborators plus users with a pending invitation."""
        items = self._paginate(
            f"{repo.api_path}/collaborators",
            what=f"list collaborators of {repo}",
            params={"affiliation": "direct"},
        )
        logins = {item["login"] for item in items if item.get("login")}

        known = {login.casefold() for login in logins}
        for key, (login, _) in self._pending_invitations(repo).items():
            if key not in known:
                logins.add(login)
        return logins

    def add_collaborator(self, repo: RepositoryRef, username: str, permission: Permission) -> ChangeResult:
        resp = self._request(
            "PUT",
            f"{repo.api_path}/collaborators/{quote(username, safe='')}",
            what=f"add {username} to {repo}",
            payload={"permission": Permission(permission).value},
        )
        # 201: invitation created; 204: already a collaborator.
        return ChangeResult.APPLIED if resp.status_code == 201 else ChangeResult.NOOP

    def remove_collaborator(self, repo: RepositoryRef, username: str) -> ChangeResult:
        result = ChangeResult.NOOP

        invitation = self._pending_invitations(repo).get(username.casefold())
        if invitation is not None:
            self._request(
                "DELETE",
                f"{repo.api_path}/invitations/{invitation[1]}",
                what=f"cancel invitation for {username} on {repo}",
                allow=(404,),
            )
            result = ChangeResult.APPLIED

        resp = self._request(
            "DELETE",
            f"{repo.api_path}/collaborators/{quote(username, safe='')}",
            what=f"remove {username} from {repo}",
            allow=(404,),
        )
        if resp.status_code != 404:
            result = ChangeResult.APPLIED
        return result
