"""Entry points the ERP calls when a roster changes or a sync is requested."""

from __future__ import annotations

import logging
from typing import Iterable

from .engine import ReconciliationEngine
from .errors import ConfigurationError
from .models import Member, ReconcilePlan, ReconcileReport
from .store import ProjectStore

logger = logging.getLogger(__name__)


class CollaboratorSync:
    """Keeps each project's GitHub collaborators in line with its team.

    ``actor`` is the internal user who triggered a sync. It is only used to
    give log lines context and never grants anything.
    """

    def __init__(self, store: ProjectStore, engine: ReconciliationEngine) -> None:
        self.store = store
        self.engine = engine

    def reconcile_on_team_edit(
        self,
        project_id: str,
        old_team: Iterable[Member],
        new_team: Iterable[Member],
        *,
        actor: str | None = None,
    ) -> ReconcileReport | None:
        """Push a committed roster change to GitHub.

        Per-member failures end up in the returned report. Only a malformed
        repository reference or an unusable credential raises.
        """
        reference = self.store.get_repository_reference(project_id)
        if actor:
            logger.info("Team of project %s edited by %s", project_id, actor)
        return self.engine.reconcile_team_edit(reference, old_team, new_team, project_id=project_id)

    def force_reconcile(self, project_id: str, *, actor: str | None = None) -> ReconcileReport:
        reference = self.store.get_repository_reference(project_id)
        if not reference:
            raise ConfigurationError.no_repository(project_id)
        if actor:
            logger.info("Forced collaborator sync of project %s requested by %s", project_id, actor)
        return self.engine.reconcile_full(reference, self.store.get_team(project_id), project_id=project_id)

    def audit(self, project_id: str) -> ReconcilePlan:
        """Report drift between the team and GitHub without changing anything."""
        reference = self.store.get_repository_reference(project_id)
        if not reference:
            raise ConfigurationError.no_repository(project_id)
        return self.engine.plan_full(reference, self.store.get_team(project_id))
