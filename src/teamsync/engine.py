"""Reconcile a GitHub repository's collaborators with a project's team roster.

Two entry points share one apply step:

- ``reconcile_team_edit`` works from the roster delta of a team edit and
  touches only the members that changed.
- ``reconcile_full`` fetches the live collaborator list and converges it on
  the whole roster. Re-running it with no drift issues no mutating calls.

Per-member failures are recorded in the returned report and logged; they never
stop the rest of the batch. Configuration, reference and authentication
problems abort the pass before anything is changed.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .client import ChangeResult, CollaboratorClient
from .errors import ConfigurationError, RemoteAPIError
from .models import (
    Member,
    MemberOutcome,
    OutcomeStatus,
    Permission,
    ReconcilePlan,
    ReconcileReport,
    desired_members,
)
from .permissions import permission_for
from .repository import RepositoryRef, resolve_repository

logger = logging.getLogger(__name__)

INCREMENTAL = "incremental"
FULL = "full"


def team_delta(
    old_team: Iterable[Member], new_team: Iterable[Member]
) -> tuple[frozenset[Member], frozenset[Member]]:
    """Return ``(added, removed)`` between two roster snapshots, by user identity."""
    old, new = frozenset(old_team), frozenset(new_team)
    return new - old, old - new


def _unlinked(member: Member) -> MemberOutcome:
    return MemberOutcome(
        username=None,
        status=OutcomeStatus.SKIPPED,
        user_id=member.user_id,
        reason="no GitHub username",
    )


def _by_login(member: Member) -> tuple[str, str]:
    return ((member.github_username or "").casefold(), member.user_id)


class ReconciliationEngine:
    """Computes and applies collaborator changes through a ``CollaboratorClient``."""

    def __init__(
        self,
        client: CollaboratorClient,
        *,
        default_owner: str | None = None,
        dry_run: bool = False,
    ) -> None:
        self.client = client
        self.default_owner = default_owner
        self.dry_run = dry_run

    # =========================================================================
    # Planning
    # =========================================================================

    def _connect(self, reference: str) -> tuple[RepositoryRef, str]:
        """Resolve the repository and verify we can reach it before changing anything."""
        repo = resolve_repository(reference, self.default_owner)
        me = self.client.authenticated_login()
        self.client.get_repository(repo)
        return repo, me

    def plan_team_edit(
        self, repo: RepositoryRef, old_team: Iterable[Member], new_team: Iterable[Member]
    ) -> ReconcilePlan:
        old_team, new_team = frozenset(old_team), frozenset(new_team)
        added, removed = team_delta(old_team, new_team)
        plan = ReconcilePlan(repository=repo)

        for member in sorted(added, key=_by_login):
            if not member.is_linked:
                plan.skipped.append(_unlinked(member))
                continue
            plan.to_add.append((member, permission_for(member.role)))

        for member in sorted(removed, key=_by_login):
            if not member.is_linked:
                plan.skipped.append(_unlinked(member))
                continue
            plan.to_remove.append(member.github_username)

        for member in sorted(new_team - added, key=_by_login):
            if member.is_linked:
                plan.unchanged.append(member.github_username)
        return plan

    def plan_full(self, reference: str, team: Iterable[Member]) -> ReconcilePlan:
        """Compare the live collaborator list with the team without changing anything."""
        repo, me = self._connect(reference)
        observed = self.client.list_collaborators(repo)
        return self.diff(repo, team, observed, protected={me})

    def diff(
        self,
        repo: RepositoryRef,
        team: Iterable[Member],
        observed: Iterable[str],
        *,
        protected: Iterable[str] = (),
    ) -> ReconcilePlan:
        """Build the plan that turns ``observed`` into the team's desired logins.

        Logins are compared case-insensitively. ``protected`` logins are never
        scheduled for removal.
        """
        team = frozenset(team)
        plan = ReconcilePlan(repository=repo)
        desired = desired_members(team)
        observed_by_key = {login.casefold(): login for login in observed}
        protected_keys = {login.casefold() for login in protected}

        for member in sorted(team, key=_by_login):
            if not member.is_linked:
                plan.skipped.append(_unlinked(member))
                continue
            holder = desired[member.github_username.casefold()]
            if holder != member:
                plan.skipped.append(
                    MemberOutcome(
                        username=member.github_username,
                        status=OutcomeStatus.SKIPPED,
                        user_id=member.user_id,
                        reason=f"shares GitHub username with user {holder.user_id}",
                    )
                )

        for key, member in sorted(desired.items()):
            if key in observed_by_key:
                plan.unchanged.append(observed_by_key[key])
            else:
                plan.to_add.append((member, permission_for(member.role)))

        for key, login in sorted(observed_by_key.items()):
            if key in desired:
                continue
            if key in protected_keys:
                plan.skipped.append(
                    MemberOutcome(username=login, status=OutcomeStatus.SKIPPED, reason="authenticated user")
                )
                continue
            plan.to_remove.append(login)
        return plan

    # =========================================================================
    # Entry points
    # =========================================================================

    def reconcile_team_edit(
        self,
        reference: str | None,
        old_team: Iterable[Member],
        new_team: Iterable[Member],
        *,
        project_id: str | None = None,
    ) -> ReconcileReport | None:
        """Apply the roster delta of a team edit.

        Returns ``None`` without contacting GitHub when no repository is linked.
        GitHub is not contacted either when no linked member joined or left.
        """
        if not (reference or "").strip():
            logger.debug("Project %s has no linked repository; skipping collaborator sync", project_id)
            return None

        repo = resolve_repository(reference, self.default_owner)
        plan = self.plan_team_edit(repo, old_team, new_team)
        if plan.has_drift:
            self._connect(reference)
        logger.info(
            "Team edit on project %s: %d to add, %d to remove on %s",
            project_id, len(plan.to_add), len(plan.to_remove), repo,
        )
        return self.apply(plan, mode=INCREMENTAL, project_id=project_id)

    def reconcile_full(
        self,
        reference: str | None,
        team: Iterable[Member],
        *,
        project_id: str | None = None,
    ) -> ReconcileReport:
        """Converge the repository's collaborators on the whole team."""
        if not (reference or "").strip():
            raise ConfigurationError.no_repository(project_id)

        plan = self.plan_full(reference, team)
        logger.info(
            "Full sync of project %s: %d to add, %d to remove, %d unchanged on %s",
            project_id, len(plan.to_add), len(plan.to_remove), len(plan.unchanged), plan.repository,
        )
        return self.apply(plan, mode=FULL, project_id=project_id)

    # =========================================================================
    # Apply
    # =========================================================================

    def apply(self, plan: ReconcilePlan, *, mode: str, project_id: str | None = None) -> ReconcileReport:
        """Run every add then every remove in ``plan``, one at a time."""
        report = ReconcileReport(repository=plan.repository, mode=mode, dry_run=self.dry_run)
        report.outcomes.extend(plan.skipped)
        report.outcomes.extend(
            MemberOutcome(username=login, status=OutcomeStatus.UNCHANGED) for login in plan.unchanged
        )

        for member, permission in plan.to_add:
            report.outcomes.append(self._add(plan.repository, member, permission, project_id))
        for login in plan.to_remove:
            report.outcomes.append(self._remove(plan.repository, login, project_id))

        log = logger.warning if report.failed else logger.info
        log(
            "Collaborator sync for project %s on %s (%s%s): %d/%d added, %d/%d removed, %d failed",
            project_id,
            plan.repository,
            mode,
            ", dry run" if self.dry_run else "",
            report.adds_succeeded,
            report.adds_attempted,
            report.removes_succeeded,
            report.removes_attempted,
            len(report.failed),
        )
        return report

    def _add(
        self, repo: RepositoryRef, member: Member, permission: Permission, project_id: str | None
    ) -> MemberOutcome:
        username = member.github_username
        if self.dry_run:
            return MemberOutcome(username, OutcomeStatus.ADDED, member.user_id, permission, reason="dry run")

        try:
            result = self.client.add_collaborator(repo, username, permission)
        except RemoteAPIError as exc:
            logger.error(
                "Failed to add collaborator %s to repository %s (project %s): %s",
                username, repo, project_id, exc,
            )
            return MemberOutcome(username, OutcomeStatus.FAILED, member.user_id, permission, reason=str(exc))

        reason = "already a collaborator" if result == ChangeResult.NOOP else None
        logger.debug("Added %s to %s with %s permission", username, repo, permission.value)
        return MemberOutcome(username, OutcomeStatus.ADDED, member.user_id, permission, reason=reason)

    def _remove(self, repo: RepositoryRef, username: str, project_id: str | None) -> MemberOutcome:
        if self.dry_run:
            return MemberOutcome(username, OutcomeStatus.REMOVED, reason="dry run")

        try:
            result = self.client.remove_collaborator(repo, username)
        except RemoteAPIError as exc:
            logger.error(
                "Failed to remove collaborator %s from repository %s (project %s): %s",
                username, repo, project_id, exc,
            )
            return MemberOutcome(username, OutcomeStatus.FAILED, reason=str(exc))

        reason = "not a collaborator" if result == ChangeResult.NOOP else None
        logger.debug("Removed %s from %s", username, repo)
        return MemberOutcome(username, OutcomeStatus.REMOVED, reason=reason)
