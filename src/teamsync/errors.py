"""Errors raised while reconciling repository collaborators."""

from __future__ import annotations


class TeamSyncError(RuntimeError):
    """Base class for every teamsync error."""


class ConfigurationError(TeamSyncError):
    """Raised when a reconciliation cannot start because something is not configured."""

    @classmethod
    def no_repository(cls, project_id: str | None = None) -> ConfigurationError:
        if project_id is None:
            return cls("no GitHub repository configured")
        return cls(f"project {project_id!r} has no GitHub repository configured")

    @classmethod
    def no_organization(cls, reference: str) -> ConfigurationError:
        return cls(f"repository {reference!r} has no owner and no organization is configured")

    @classmethod
    def missing_token(cls) -> ConfigurationError:
        return cls("TEAMSYNC_GITHUB_TOKEN (or GITHUB_TOKEN) is required for the GitHub API")


class RepositoryReferenceError(TeamSyncError):
    """Raised when a stored repository reference cannot be resolved."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        super().__init__(f"invalid repository reference {reference!r}: {reason}")


class RemoteAPIError(TeamSyncError):
    """Raised when GitHub answers with an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, what: str, details: str = "") -> RemoteAPIError:
        message = f"HTTP {status_code} while trying to {what}"
        if details:
            message = f"{message}: {details}"
        return cls(message, status_code=status_code)


class RemoteAuthError(RemoteAPIError):
    """Raised when GitHub rejects the configured credential."""


class RemoteConnectionError(RemoteAPIError):
    """Raised when GitHub cannot be reached at all."""


class StoreError(TeamSyncError):
    """Raised when the project store is unreadable or inconsistent."""


class ProjectNotFoundError(StoreError):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"project not found: {project_id}")
