"""Set diff between the roles that exist and the roles that should exist.

The same primitive drives client roles, realm roles, default-role composites,
scope mappings and service-account role bindings; callers only differ in the
admin calls that carry out the removals, renames and creations.

A desired entry matches an actual one when it carries the actual entry's ID
(a rename when the names differ), or otherwise when the names are equal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from realmsync.keycloak.errors import KeycloakValidationError
from realmsync.models.common import RoleRepresentation


@dataclass(frozen=True)
class RoleRef:
    """A role addressed by name, with its server ID once known."""

    name: str
    id: str | None = None

    @classmethod
    def of(cls, role: RoleRepresentation | dict[str, Any]) -> "RoleRef":
        if isinstance(role, RoleRepresentation):
            return cls(name=role.name, id=role.id or None)
        return cls(name=role["name"], id=role.get("id") or None)

    def payload(self) -> dict[str, str]:
        if self.id:
            return {"id": self.id, "name": self.name}
        return {"name": self.name}


def _sort_key(ref: RoleRef) -> tuple[str, str]:
    return (ref.name, ref.id or "")


@dataclass(frozen=True)
class RoleRename:
    current: RoleRef
    desired: RoleRef


@dataclass(frozen=True)
class RoleSetDiff:
    """Outcome of diffing an actual role set against a desired one."""

    to_remove: tuple[RoleRef, ...]
    # (actual, desired) pairs; renames are the pairs whose names differ
    to_keep: tuple[tuple[RoleRef, RoleRef], ...]
    to_create: tuple[RoleRef, ...]

    @property
    def renames(self) -> tuple[RoleRename, ...]:
        return tuple(
            RoleRename(current=a, desired=d) for a, d in self.to_keep if a.name != d.name
        )

    @property
    def has_changes(self) -> bool:
        return bool(self.to_remove or self.to_create or self.renames)


def _normalize(roles: Iterable[RoleRef], side: str) -> list[RoleRef]:
    """Collapse duplicates; reject a name or ID claimed by conflicting entries."""
    by_name: dict[str, RoleRef] = {}
    for ref in sorted(set(roles), key=_sort_key):
        existing = by_name.get(ref.name)
        if existing is None or existing.id is None:
            by_name[ref.name] = ref
        elif ref.id is not None and ref.id != existing.id:
            raise KeycloakValidationError(
                f"Role '{ref.name}' listed with conflicting IDs in {side} set",
                reference=ref.name,
            )

    by_id: dict[str, RoleRef] = {}
    for ref in by_name.values():
        if ref.id is None:
            continue
        other = by_id.setdefault(ref.id, ref)
        if other is not ref:
            raise KeycloakValidationError(
                f"Role ID '{ref.id}' listed under names '{other.name}' and '{ref.name}' "
                f"in {side} set",
                reference=ref.name,
            )
    return sorted(by_name.values(), key=_sort_key)


def diff_role_sets(actual: Iterable[RoleRef], desired: Iterable[RoleRef]) -> RoleSetDiff:
    """Compute removals, keeps (including renames) and creations.

    Inputs are not modified and their order does not affect the result.
    """
    actual_refs = _normalize(actual, "actual")
    desired_refs = _normalize(desired, "desired")

    actual_by_id = {a.id: a for a in actual_refs if a.id}
    matched: set[RoleRef] = set()
    keep: list[tuple[RoleRef, RoleRef]] = []
    unmatched: list[RoleRef] = []

    # ID is authoritative once known
    for d in desired_refs:
        a = actual_by_id.get(d.id) if d.id else None
        if a is not None:
            keep.append((a, d))
            matched.add(a)
        else:
            unmatched.append(d)

    actual_by_name = {a.name: a for a in actual_refs if a not in matched}
    create: list[RoleRef] = []
    for d in unmatched:
        a = actual_by_name.pop(d.name, None)
        if a is not None:
            keep.append((a, d))
        else:
            create.append(d)

    return RoleSetDiff(
        to_remove=tuple(sorted(actual_by_name.values(), key=_sort_key)),
        to_keep=tuple(sorted(keep, key=lambda pair: _sort_key(pair[1]))),
        to_create=tuple(sorted(create, key=_sort_key)),
    )


def apply_role_diff(
    diff: RoleSetDiff,
    *,
    remove: Callable[[list[RoleRef]], None],
    create: Callable[[list[RoleRef]], None],
    rename: Callable[[RoleRename], None] | None = None,
) -> None:
    """Carry out a diff: removals first, then renames, then creations."""
    if diff.to_remove:
        remove(list(diff.to_remove))
    if rename is not None:
        for r in diff.renames:
            rename(r)
    if diff.to_create:
        create(list(diff.to_create))
