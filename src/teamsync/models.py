from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable

from .repository import RepositoryRef


class Role(str, enum.Enum):
    """Roles a user can hold inside the ERP."""

    ADMIN = "ADMIN"
    CLIENT = "CLIENT"
    DEV = "DEV"


class Permission(str, enum.Enum):
    """Repository permission levels accepted by GitHub."""

    PULL = "pull"
    TRIAGE = "triage"
    PUSH = "push"
    MAINTAIN = "maintain"
    ADMIN = "admin"


class OutcomeStatus(str, enum.Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    SKIPPED = "skipped"


def normalize_username(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lstrip("@").strip()
    return value or None


@dataclass(frozen=True)
class Member:
    """Read-only snapshot of a team member.

    Equality and hashing use ``user_id`` only, so set arithmetic on teams
    works by user identity regardless of role or username changes.
    """

    user_id: str
    role: Role = field(default=Role.CLIENT, compare=False)
    github_username: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "github_username", normalize_username(self.github_username))

    @property
    def is_linked(self) -> bool:
        return self.github_username is not None


def desired_members(team: Iterable[Member]) -> dict[str, Member]:
    """Map case-folded GitHub logins to the linked members of a team."""
    desired: dict[str, Member] = {}
    for member in sorted(team, key=lambda m: m.user_id):
        if member.is_linked:
            desired.setdefault(member.github_username.casefold(), member)
    return desired


@dataclass(frozen=True)
class MemberOutcome:
    """What happened to one member during a reconciliation pass."""

    username: str | None
    status: OutcomeStatus
    user_id: str | None = None
    permission: Permission | None = None
    reason: str | None = None


@dataclass
class ReconcilePlan:
    """Operations needed to make a repository match a team."""

    repository: RepositoryRef
    to_add: list[tuple[Member, Permission]] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[MemberOutcome] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.to_add or self.to_remove)


@dataclass
class ReconcileReport:
    """Per-member results of one reconciliation pass."""

    repository: RepositoryRef
    mode: str
    dry_run: bool = False
    outcomes: list[MemberOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus, *, kind: str | None = None) -> int:
        return sum(
            1 for o in self.outcomes
            if o.status == status and (kind is None or _kind_of(o) == kind)
        )

    @property
    def adds_attempted(self) -> int:
        return self.adds_succeeded + self._count(OutcomeStatus.FAILED, kind="add")

    @property
    def adds_succeeded(self) -> int:
        return self._count(OutcomeStatus.ADDED)

    @property
    def removes_attempted(self) -> int:
        return self.removes_succeeded + self._count(OutcomeStatus.FAILED, kind="remove")

    @property
    def removes_succeeded(self) -> int:
        return self._count(OutcomeStatus.REMOVED)

    @property
    def failed(self) -> list[MemberOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict[str, int]:
        return {
            "adds_attempted": self.adds_attempted,
            "adds_succeeded": self.adds_succeeded,
            "removes_attempted": self.removes_attempted,
            "removes_succeeded": self.removes_succeeded,
            "failed": len(self.failed),
        }


def _kind_of(outcome: MemberOutcome) -> str:
    # Failed adds carry the permission they were attempted with; failed removes do not.
    return "add" if outcome.permission is not None else "remove"
