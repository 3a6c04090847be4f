"""Drift check between desired and exported authorization settings.

The import endpoint adds or overwrites entries by name but never removes them,
so entries missing from the desired settings are deleted one by one before
an import.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from realmsync.models.policies import ResourceServer

COLLECTIONS = ("policies", "resources", "scopes")


@dataclass(frozen=True)
class AuthorizationDiff:
    # A desired entry or setting is missing or differs remotely
    changed: bool
    # Remote IDs of entries that are not desired
    stale_policies: tuple[str, ...] = ()
    stale_resources: tuple[str, ...] = ()
    stale_scopes: tuple[str, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(
            self.changed or self.stale_policies or self.stale_resources or self.stale_scopes
        )


def _decode(value: Any) -> Any:
    """Config values are strings that usually hold JSON."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _same_value(key: str, want: Any, have: Any) -> bool:
    if want in ("", [], {}, False) and not have:
        return True
    if key == "config":
        have = have or {}
        return all(_decode(v) == _decode(have.get(k)) for k, v in want.items())
    if isinstance(want, list):
        if not isinstance(have, list):
            return False
        if want and isinstance(want[0], dict):
            # Nested scopes are referenced by name
            return {w.get("name") for w in want} == {h.get("name") for h in have}
        return sorted(map(str, want)) == sorted(map(str, have))
    return want == have


def _same_entry(want: dict[str, Any], have: dict[str, Any]) -> bool:
    return all(
        _same_value(key, value, have.get(key))
        for key, value in want.items()
        if key not in ("id", "_id")
    )


def _entry_id(entry: dict[str, Any]) -> str | None:
    return entry.get("id") or entry.get("_id")


def diff_authorization(
    desired: ResourceServer, current: dict[str, Any] | None
) -> AuthorizationDiff:
    """Compare desired settings with a remote export, entry by entry."""
    if current is None:
        return AuthorizationDiff(changed=True)

    wanted = desired.to_representation()
    changed = not all(
        _same_value(key, value, current.get(key))
        for key, value in wanted.items()
        if key not in COLLECTIONS
    )

    stale: dict[str, tuple[str, ...]] = {}
    for collection in COLLECTIONS:
        remote = {e.get("name"): e for e in current.get(collection) or []}
        desired_entries = wanted.get(collection) or []
        for entry in desired_entries:
            have = remote.get(entry["name"])
            if have is None or not _same_entry(entry, have):
                changed = True
        names = {e["name"] for e in desired_entries}
        stale[collection] = tuple(
            sorted(
                _entry_id(e)
                for name, e in remote.items()
                if name not in names and _entry_id(e)
            )
        )

    return AuthorizationDiff(
        changed=changed,
        stale_policies=stale["policies"],
        stale_resources=stale["resources"],
        stale_scopes=stale["scopes"],
    )
