"""Resolve stored repository references into GitHub ``owner/name`` identifiers."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError, RepositoryReferenceError


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def api_path(self) -> str:
        return f"repos/{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


def resolve_repository(reference: str | None, default_owner: str | None = None) -> RepositoryRef:
    """Turn a stored reference into a fully qualified repository.

    ``owner/name`` is split as-is. A bare ``name`` is combined with
    ``default_owner``. Anything else raises instead of guessing, since a wrong
    guess would point collaborator changes at someone else's repository.
    """
    raw = reference or ""
    value = raw.strip()
    if not value:
        raise RepositoryReferenceError(raw, "reference is empty")

    parts = value.split("/")
    if len(parts) > 2:
        raise RepositoryReferenceError(raw, "expected 'name' or 'owner/name'")
    if not all(part.strip() for part in parts):
        raise RepositoryReferenceError(raw, "owner and name must be non-empty")

    if len(parts) == 2:
        owner, name = (part.strip() for part in parts)
        return RepositoryRef(owner=owner, name=name)

    owner = (default_owner or "").strip()
    if not owner:
        raise ConfigurationError.no_organization(value)
    if "/" in owner:
        raise RepositoryReferenceError(raw, f"configured organization {owner!r} is not a single owner")
    return RepositoryRef(owner=owner, name=value)
