from __future__ import annotations

import pytest

from teamsync.client import ChangeResult
from teamsync.errors import RemoteAPIError
from teamsync.models import Member, Permission, Role
from teamsync.repository import RepositoryRef


class FakeClient:
    """In-memory stand-in for GitHubCollaboratorClient that records every call."""

    def __init__(
        self,
        collaborators=(),
        *,
        login: str = "sync-bot",
        fail_add=(),
        fail_remove=(),
        auth_error: Exception | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.collaborators = set(collaborators)
        self.login = login
        self.fail_add = set(fail_add)
        self.fail_remove = set(fail_remove)
        self.auth_error = auth_error
        self.list_error = list_error
        self.calls: list[tuple] = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    @property
    def mutations(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("add", "remove")]

    def authenticated_login(self) -> str:
        self.calls.append(("login",))
        if self.auth_error:
            raise self.auth_error
        return self.login

    def get_repository(self, repo: RepositoryRef) -> dict:
        self.calls.append(("repo", repo.full_name))
        return {"full_name": repo.full_name}

    def list_collaborators(self, repo: RepositoryRef) -> set[str]:
        self.calls.append(("list", repo.full_name))
        if self.list_error:
            raise self.list_error
        return set(self.collaborators)

    def add_collaborator(self, repo: RepositoryRef, username: str, permission: Permission) -> ChangeResult:
        self.calls.append(("add", repo.full_name, username, permission))
        if username in self.fail_add:
            raise RemoteAPIError(f"HTTP 422 while trying to add {username}", status_code=422)
        if username in self.collaborators:
            return ChangeResult.NOOP
        self.collaborators.add(username)
        return ChangeResult.APPLIED

    def remove_collaborator(self, repo: RepositoryRef, username: str) -> ChangeResult:
        self.calls.append(("remove", repo.full_name, username))
        if username in self.fail_remove:
            raise RemoteAPIError(f"HTTP 403 while trying to remove {username}", status_code=403)
        if username not in self.collaborators:
            return ChangeResult.NOOP
        self.collaborators.discard(username)
        return ChangeResult.APPLIED


@pytest.fixture
def alice() -> Member:
    return Member("A", Role.DEV, "alice")


@pytest.fixture
def bob() -> Member:
    return Member("B", Role.CLIENT, "bob")


@pytest.fixture
def carol() -> Member:
    return Member("C", Role.DEV, "carol")


@pytest.fixture
def nobody() -> Member:
    """A team member without a GitHub account."""
    return Member("N", Role.ADMIN, None)
