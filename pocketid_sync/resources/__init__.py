"""Per-kind handlers and the reconciliation engines that drive them."""

from typing import Dict

from pocketid_sync.clients.pocketid import PocketIDClient
from pocketid_sync.core.declared import ResourceKind
from pocketid_sync.core.resolver import IdentityResolver
from pocketid_sync.resources.base import (
    BaseReconciler,
    BindingReconciler,
    ReconcileAction,
    ReconcileOutcome,
    ReconcileResult,
    ResourceReconciler,
    reconciler_for,
)
from pocketid_sync.resources.bindings import (
    OIDCClientGroupBindingHandler,
    UserGroupBindingHandler,
)
from pocketid_sync.resources.groups import GroupHandler
from pocketid_sync.resources.oidc_clients import OIDCClientHandler
from pocketid_sync.resources.users import AdminUserHandler, UserHandler

HANDLER_TYPES = (
    UserHandler,
    AdminUserHandler,
    GroupHandler,
    OIDCClientHandler,
    UserGroupBindingHandler,
    OIDCClientGroupBindingHandler,
)


def build_reconcilers(
    client: PocketIDClient,
    resolver: IdentityResolver,
) -> Dict[ResourceKind, BaseReconciler]:
    """One reconciler per kind, all sharing a client and a resolver."""
    return {
        handler_type.kind: reconciler_for(handler_type(client), resolver)
        for handler_type in HANDLER_TYPES
    }


__all__ = [
    "BaseReconciler",
    "BindingReconciler",
    "ReconcileAction",
    "ReconcileOutcome",
    "ReconcileResult",
    "ResourceReconciler",
    "build_reconcilers",
]
