"""Project/team roster storage.

The engine only needs ``ProjectStore``. ``YamlProjectStore`` is a file-backed
implementation used by the CLI; its file looks like::

    users:
      - id: u1
        role: DEV
        github: alice
      - id: u2
        role: CLIENT
        github: bob
    projects:
      - id: proj1
        repository: org/proj1
        team: [u1, u2]
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

import yaml

from .errors import ProjectNotFoundError, StoreError
from .models import Member, Role

logger = logging.getLogger(__name__)

TeamEditListener = Callable[[str, frozenset[Member], frozenset[Member]], Any]


class ProjectStore(Protocol):
    def get_team(self, project_id: str) -> frozenset[Member]:
        ...

    def get_repository_reference(self, project_id: str) -> str | None:
        ...


def _parse_user(item: Any) -> Member:
    if not isinstance(item, dict):
        raise StoreError(f"user entry must be a mapping, got {item!r}")
    user_id = item.get("id")
    if user_id is None or not str(user_id).strip():
        raise StoreError(f"user entry without id: {item!r}")
    role = str(item.get("role", Role.CLIENT.value)).strip().upper()
    try:
        role = Role(role)
    except ValueError as exc:
        raise StoreError(f"user {user_id}: unknown role {item.get('role')!r}") from exc
    github = item.get("github") or item.get("github_username")
    return Member(user_id=str(user_id), role=role, github_username=str(github) if github else None)


def _parse_store(content: str) -> tuple[dict[str, Member], dict[str, dict[str, Any]]]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise StoreError(f"Invalid YAML: {exc}") from exc
    if not data:
        return {}, {}
    if not isinstance(data, dict):
        raise StoreError("store file must be a mapping with 'users' and 'projects'")

    users: dict[str, Member] = {}
    for item in data.get("users") or []:
        member = _parse_user(item)
        if member.user_id in users:
            raise StoreError(f"duplicate user id: {member.user_id}")
        users[member.user_id] = member

    projects: dict[str, dict[str, Any]] = {}
    for item in data.get("projects") or []:
        if not isinstance(item, dict) or item.get("id") is None:
            raise StoreError(f"project entry without id: {item!r}")
        project_id = str(item["id"])
        team = [str(user_id) for user_id in item.get("team") or []]
        unknown = [user_id for user_id in team if user_id not in users]
        if unknown:
            raise StoreError(f"project {project_id}: unknown user id(s) {', '.join(unknown)}")
        repository = item.get("repository")
        projects[project_id] = {
            "id": project_id,
            "repository": str(repository).strip() if repository else None,
            "team": team,
        }
    return users, projects


def _dump_store(users: dict[str, Member], projects: dict[str, dict[str, Any]]) -> str:
    data = {
        "users": [
            {"id": m.user_id, "role": m.role.value, "github": m.github_username}
            for m in users.values()
        ],
        "projects": [
            {"id": p["id"], "repository": p["repository"], "team": list(p["team"])}
            for p in projects.values()
        ],
    }
    return yaml.safe_dump(data, sort_keys=False)


class YamlProjectStore:
    """Projects and users kept in a single YAML file.

    ``set_team`` is serialized with a lock, so a listener never sees a stale
    ``old_team``. Listeners run after the file has been written.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._listeners: list[TeamEditListener] = []
        if not self.path.exists():
            raise StoreError(f"store file not found: {self.path}")
        self._users, self._projects = _parse_store(self.path.read_text())

    def _project(self, project_id: str) -> dict[str, Any]:
        try:
            return self._projects[project_id]
        except KeyError:
            raise ProjectNotFoundError(project_id) from None

    def project_ids(self) -> list[str]:
        return list(self._projects)

    def get_team(self, project_id: str) -> frozenset[Member]:
        return frozenset(self._users[user_id] for user_id in self._project(project_id)["team"])

    def get_repository_reference(self, project_id: str) -> str | None:
        return self._project(project_id)["repository"]

    def subscribe(self, listener: TeamEditListener) -> None:
        self._listeners.append(listener)

    def set_team(self, project_id: str, user_ids: Iterable[str]) -> frozenset[Member]:
        """Replace a project's roster and notify listeners with the old and new team."""
        with self._lock:
            project = self._project(project_id)
            new_ids = list(dict.fromkeys(str(user_id) for user_id in user_ids))
            unknown = [user_id for user_id in new_ids if user_id not in self._users]
            if unknown:
                raise StoreError(f"unknown user id(s): {', '.join(unknown)}")

            old_team = self.get_team(project_id)
            previous, project["team"] = project["team"], new_ids
            try:
                self.path.write_text(_dump_store(self._users, self._projects))
            except OSError:
                project["team"] = previous
                raise
            new_team = self.get_team(project_id)
            logger.info(
                "Project %s team updated: %s -> %s",
                project_id,
                sorted(m.user_id for m in old_team),
                sorted(m.user_id for m in new_team),
            )

            for listener in self._listeners:
                listener(project_id, old_team, new_team)
        return new_team
