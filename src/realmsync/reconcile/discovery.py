"""Binding of client resources to the realm resource their selector picks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from realmsync.models.common import LabelSelector
from realmsync.models.realm import KeycloakRealmResource


class MatchState(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class RealmMatch:
    state: MatchState
    realm: KeycloakRealmResource | None = None
    candidates: tuple[str, ...] = field(default_factory=tuple)

    @property
    def found(self) -> bool:
        return self.state is MatchState.FOUND

    def describe(self) -> str:
        if self.state is MatchState.FOUND:
            return f"realm {self.realm.realm_name}"
        if self.state is MatchState.NOT_FOUND:
            return "no realm matches the selector"
        return f"selector matches several realms: {', '.join(self.candidates)}"


def find_realm(
    selector: LabelSelector | None, realms: Iterable[KeycloakRealmResource]
) -> RealmMatch:
    """Find the single realm whose labels satisfy ``selector``.

    A missing or empty selector matches nothing.
    """
    if selector is None or not selector.match_labels:
        return RealmMatch(MatchState.NOT_FOUND)

    matches = [r for r in realms if selector.matches(r.metadata.labels)]
    if not matches:
        return RealmMatch(MatchState.NOT_FOUND)
    if len(matches) > 1:
        return RealmMatch(
            MatchState.AMBIGUOUS,
            candidates=tuple(sorted(r.realm_name for r in matches)),
        )
    return RealmMatch(MatchState.FOUND, realm=matches[0])
