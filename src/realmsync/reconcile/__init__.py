"""Reconcile engine: role-set diffing and per-resource convergence passes."""

from realmsync.reconcile.authorization import AuthorizationDiff, diff_authorization
from realmsync.reconcile.discovery import MatchState, RealmMatch, find_realm
from realmsync.reconcile.engine import ClientReconciler
from realmsync.reconcile.realm import RealmReconciler
from realmsync.reconcile.roles import (
    RoleRef,
    RoleRename,
    RoleSetDiff,
    apply_role_diff,
    diff_role_sets,
)

__all__ = [
    "AuthorizationDiff",
    "ClientReconciler",
    "MatchState",
    "RealmMatch",
    "RealmReconciler",
    "RoleRef",
    "RoleRename",
    "RoleSetDiff",
    "apply_role_diff",
    "diff_authorization",
    "diff_role_sets",
    "find_realm",
]
