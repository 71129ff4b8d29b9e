"""Resolution of external identities and cross-resource references."""

from typing import TYPE_CHECKING, Any, Optional, Sequence

import structlog

from pocketid_sync.clients.exceptions import (
    ReferenceUnresolvedError,
    SelectorUnsupportedError,
)
from pocketid_sync.core.declared import (
    DeclaredResource,
    LiteralReference,
    PointerReference,
    ResourceKind,
    SelectorReference,
)
from pocketid_sync.core.state import ResourceStore

if TYPE_CHECKING:
    from pocketid_sync.resources.base import ExternalResourceHandler

logger = structlog.get_logger(__name__)


class IdentityResolver:
    """Finds the remote object behind a declared resource and resolves references."""

    def __init__(self, store: ResourceStore) -> None:
        self.store = store
        self._logger = logger.bind(component="IdentityResolver")

    def lookup_key(self, resource: DeclaredResource, handler: "ExternalResourceHandler") -> str:
        """The name used for discovery: the recorded stable name, else the spec's."""
        return resource.status.stable_name or handler.stable_name(resource.spec)

    async def discover(
        self,
        resource: DeclaredResource,
        handler: "ExternalResourceHandler",
    ) -> Optional[Any]:
        """Find a pre-existing remote object for a resource with no recorded identity."""
        key = self.lookup_key(resource, handler)
        remote = await handler.find(key)
        self._logger.debug(
            "Discovery lookup",
            kind=resource.kind.value,
            name=resource.name,
            lookup_key=key,
            found=remote is not None,
        )
        return remote

    async def resolve(
        self,
        reference: Any,
        target_kinds: Sequence[ResourceKind],
        kind: Optional[ResourceKind] = None,
        name: Optional[str] = None,
    ) -> str:
        """Resolve a reference to an external identifier.

        Args:
            reference: Literal, pointer or selector reference
            target_kinds: Kinds a pointer may refer to, tried in order
            kind: Kind of the referring resource, for error context
            name: Name of the referring resource, for error context

        Raises:
            ReferenceUnresolvedError: If the target is missing or not yet observed
            SelectorUnsupportedError: For selector references
        """
        kind_value = kind.value if kind else None

        if isinstance(reference, LiteralReference):
            return reference.value

        if isinstance(reference, SelectorReference):
            raise SelectorUnsupportedError(
                f"selector references are not supported ({reference.describe()})",
                kind=kind_value,
                name=name,
            )

        if isinstance(reference, PointerReference):
            target = None
            for target_kind in target_kinds:
                target = self.store.get(target_kind, reference.name)
                if target is not None:
                    break

            expected = " or ".join(k.value for k in target_kinds)
            if target is None:
                raise ReferenceUnresolvedError(
                    f"referenced {expected} {reference.name!r} is not declared",
                    kind=kind_value,
                    name=name,
                )
            if not target.status.observed_identity:
                raise ReferenceUnresolvedError(
                    f"referenced {target.kind.value} {reference.name!r} has no ID yet",
                    kind=kind_value,
                    name=name,
                )
            return target.status.observed_identity

        raise ReferenceUnresolvedError(
            f"unsupported reference {reference!r}", kind=kind_value, name=name
        )
