"""Generic reconciliation engine and the per-kind handler contracts it drives."""

import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

import structlog
from pydantic import BaseModel, Field

from pocketid_sync.clients.exceptions import (
    APIError,
    AssetError,
    InvariantViolatedError,
    ReferenceUnresolvedError,
    SelectorUnsupportedError,
)
from pocketid_sync.clients.pocketid import PocketIDClient
from pocketid_sync.core.declared import ConditionType, DeclaredResource, ResourceKind
from pocketid_sync.core.resolver import IdentityResolver

logger = structlog.get_logger(__name__)

RemoteType = TypeVar("RemoteType")


class ReconcileAction(str, Enum):
    """Action taken on the external system during a cycle."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SKIP = "skip"
    ERROR = "error"


class ReconcileOutcome(str, Enum):
    """How a reconciliation cycle ended."""
    CREATED = "created"
    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    DELETING = "deleting"
    DELETED = "deleted"
    NOT_READY = "not_ready"
    FAILED = "failed"


class ReconcileResult(BaseModel):
    """Result of one reconciliation cycle for one declared resource."""

    operation_id: str
    kind: ResourceKind
    name: str
    action: ReconcileAction
    outcome: ReconcileOutcome
    success: bool
    observed_identity: Optional[str] = None
    condition: Optional[ConditionType] = None
    message: Optional[str] = None
    # Sensitive values produced on creation; never persisted to status
    connection_details: Dict[str, str] = Field(default_factory=dict, repr=False)


class ExternalResourceHandler(ABC, Generic[RemoteType]):
    """Capabilities needed to reconcile one kind of standalone remote object."""

    kind: ResourceKind
    display_name: str

    def __init__(self, client: PocketIDClient) -> None:
        self.client = client

    @abstractmethod
    def stable_name(self, spec: Any) -> str:
        """Name from the spec used to discover a pre-existing remote object."""

    @abstractmethod
    def remote_stable_name(self, remote: RemoteType) -> str:
        """The same name as reported by the remote object."""

    @abstractmethod
    async def get(self, identity: str) -> Optional[RemoteType]:
        """Fetch by external ID; None if it does not exist."""

    @abstractmethod
    async def find(self, stable_name: str) -> Optional[RemoteType]:
        """List and match by stable name; None if nothing matches."""

    @abstractmethod
    async def create(self, spec: Any) -> RemoteType:
        pass

    @abstractmethod
    async def update(self, identity: str, spec: Any) -> RemoteType:
        pass

    @abstractmethod
    async def delete(self, identity: str) -> None:
        pass

    @abstractmethod
    def is_up_to_date(self, spec: Any, remote: RemoteType) -> bool:
        pass

    @abstractmethod
    def observe(self, remote: RemoteType) -> BaseModel:
        """Project the remote object onto the kind's observation model."""

    def identity_of(self, remote: RemoteType) -> str:
        return getattr(remote, "id", "") or ""

    def check_invariants(self, remote: RemoteType) -> None:
        """Raise InvariantViolatedError if the remote object cannot be managed as this kind."""

    def connection_details(self, remote: RemoteType) -> Dict[str, str]:
        return {}

    async def converge_assets(self, identity: str, spec: Any) -> None:
        """Best-effort side effects run after create and update."""


class BindingHandler(ABC):
    """Capabilities needed to reconcile a membership between two remote objects."""

    kind: ResourceKind
    display_name: str
    member_kinds: Tuple[ResourceKind, ...]
    container_kinds: Tuple[ResourceKind, ...]

    def __init__(self, client: PocketIDClient) -> None:
        self.client = client

    @abstractmethod
    def references(self, spec: Any) -> Tuple[Any, Any]:
        """The (member, container) references from the spec."""

    @abstractmethod
    async def exists(self, member_id: str, container_id: str) -> bool:
        pass

    @abstractmethod
    async def associate(self, member_id: str, container_id: str) -> None:
        pass

    @abstractmethod
    async def dissociate(self, member_id: str, container_id: str) -> None:
        pass

    @abstractmethod
    async def observe(self, member_id: str, container_id: str) -> BaseModel:
        pass

    @staticmethod
    def join_identity(member_id: str, container_id: str) -> str:
        return f"{member_id}:{container_id}"

    @staticmethod
    def split_identity(identity: str) -> Optional[Tuple[str, str]]:
        member_id, sep, container_id = identity.partition(":")
        if not sep or not member_id or not container_id:
            return None
        return member_id, container_id


class BaseReconciler(ABC):
    """Shared result and condition bookkeeping."""

    def __init__(self, handler: Any, resolver: IdentityResolver) -> None:
        self.handler = handler
        self.resolver = resolver
        self._logger = logger.bind(
            reconciler_type=self.__class__.__name__,
            kind=handler.kind.value,
        )

    @property
    def kind(self) -> ResourceKind:
        return self.handler.kind

    @abstractmethod
    async def reconcile(self, resource: DeclaredResource) -> ReconcileResult:
        """Run one reconciliation cycle and update the resource's status."""

    def _result(
        self,
        resource: DeclaredResource,
        action: ReconcileAction,
        outcome: ReconcileOutcome,
        condition: ConditionType,
        message: str = "",
        connection_details: Optional[Dict[str, str]] = None,
    ) -> ReconcileResult:
        resource.status.set_condition(condition, message)
        success = outcome not in (ReconcileOutcome.FAILED, ReconcileOutcome.NOT_READY)

        log = self._logger.bind(
            name=resource.name,
            action=action.value,
            outcome=outcome.value,
            observed_identity=resource.status.observed_identity or None,
        )
        if outcome == ReconcileOutcome.FAILED:
            log.error("Reconciliation failed", condition=condition.value, message=message)
        elif outcome == ReconcileOutcome.NOT_READY:
            log.info("Reconciliation waiting on references", message=message)
        elif action == ReconcileAction.SKIP:
            log.debug("Resource up to date")
        else:
            log.info("Reconciled resource")

        return ReconcileResult(
            operation_id=str(uuid.uuid4()),
            kind=resource.kind,
            name=resource.name,
            action=action,
            outcome=outcome,
            success=success,
            observed_identity=resource.status.observed_identity or None,
            condition=condition,
            message=message or None,
            connection_details=connection_details or {},
        )

    def _failure(
        self,
        resource: DeclaredResource,
        error: Exception,
        operation: str,
    ) -> ReconcileResult:
        """Translate an exception into the matching condition and outcome."""
        if isinstance(error, ReferenceUnresolvedError):
            return self._result(
                resource,
                ReconcileAction.SKIP,
                ReconcileOutcome.NOT_READY,
                ConditionType.UNRESOLVED,
                str(error),
            )
        if isinstance(error, InvariantViolatedError):
            return self._result(
                resource,
                ReconcileAction.ERROR,
                ReconcileOutcome.FAILED,
                ConditionType.INVARIANT_VIOLATED,
                str(error),
            )
        if isinstance(error, SelectorUnsupportedError):
            message = str(error)
        else:
            message = f"failed to {operation} {self.handler.display_name}: {error}"
        return self._result(
            resource,
            ReconcileAction.ERROR,
            ReconcileOutcome.FAILED,
            ConditionType.UNAVAILABLE,
            message,
        )


class ResourceReconciler(BaseReconciler):
    """Converges one standalone remote object towards its declared spec.

    Each cycle observes the remote object (by recorded ID, or by discovery
    on the stable name when no ID is known) and then takes at most one
    mutating action: create, update or delete. Deletion completes on the
    cycle that observes the object as absent.
    """

    handler: ExternalResourceHandler

    async def reconcile(self, resource: DeclaredResource) -> ReconcileResult:
        operation = "get"
        try:
            remote = await self._observe(resource)

            if remote is None:
                if resource.deletion_requested:
                    return self._result(
                        resource,
                        ReconcileAction.SKIP,
                        ReconcileOutcome.DELETED,
                        ConditionType.UNAVAILABLE,
                        f"{self.handler.display_name} deleted",
                    )
                operation = "create"
                return await self._create(resource)

            self._record(resource, remote)

            if resource.deletion_requested:
                operation = "delete"
                await self.handler.delete(resource.status.observed_identity)
                return self._result(
                    resource,
                    ReconcileAction.DELETE,
                    ReconcileOutcome.DELETING,
                    ConditionType.UNAVAILABLE,
                    f"deleting {self.handler.display_name}",
                )

            if self.handler.is_up_to_date(resource.spec, remote):
                return self._result(
                    resource,
                    ReconcileAction.SKIP,
                    ReconcileOutcome.UP_TO_DATE,
                    ConditionType.AVAILABLE,
                )

            operation = "update"
            return await self._update(resource)

        except (APIError, InvariantViolatedError, SelectorUnsupportedError) as e:
            return self._failure(resource, e, operation)

    async def _observe(self, resource: DeclaredResource) -> Optional[Any]:
        identity = resource.status.observed_identity
        if identity:
            remote = await self.handler.get(identity)
        else:
            remote = await self.resolver.discover(resource, self.handler)

        if remote is not None:
            self.handler.check_invariants(remote)
        return remote

    def _record(self, resource: DeclaredResource, remote: Any) -> None:
        resource.status.record(
            self.handler.identity_of(remote),
            self.handler.remote_stable_name(remote),
            self.handler.observe(remote),
        )

    async def _create(self, resource: DeclaredResource) -> ReconcileResult:
        created = await self.handler.create(resource.spec)
        identity = self.handler.identity_of(created)
        if not identity:
            # Fall back to discovery when the create response carries no ID
            created = await self.resolver.discover(resource, self.handler)
            if created is None:
                raise APIError("create response did not identify the new object")
            identity = self.handler.identity_of(created)

        self._record(resource, created)
        await self._converge_assets(resource, identity)

        return self._result(
            resource,
            ReconcileAction.CREATE,
            ReconcileOutcome.CREATED,
            ConditionType.AVAILABLE,
            connection_details=self.handler.connection_details(created),
        )

    async def _update(self, resource: DeclaredResource) -> ReconcileResult:
        identity = resource.status.observed_identity
        updated = await self.handler.update(identity, resource.spec)
        if not self.handler.identity_of(updated):
            updated = await self.handler.get(identity)

        if updated is not None:
            self._record(resource, updated)
        await self._converge_assets(resource, identity)

        return self._result(
            resource,
            ReconcileAction.UPDATE,
            ReconcileOutcome.UPDATED,
            ConditionType.AVAILABLE,
        )

    async def _converge_assets(self, resource: DeclaredResource, identity: str) -> None:
        try:
            await self.handler.converge_assets(identity, resource.spec)
        except (AssetError, APIError) as e:
            self._logger.warning(
                "Failed to converge assets",
                name=resource.name,
                observed_identity=identity,
                error=str(e),
            )


class BindingReconciler(BaseReconciler):
    """Converges the existence of a membership between two remote objects.

    A binding has no mutable fields, so it is only ever created or deleted.
    Both references must resolve before any membership call is made; when
    deleting, the identifiers recorded at creation are used if the
    references no longer resolve.
    """

    handler: BindingHandler

    async def reconcile(self, resource: DeclaredResource) -> ReconcileResult:
        operation = "resolve references for"
        try:
            try:
                member_id, container_id = await self._resolve(resource)
            except (ReferenceUnresolvedError, SelectorUnsupportedError):
                if not resource.deletion_requested:
                    raise
                recorded = self.handler.split_identity(resource.status.observed_identity)
                if recorded is None:
                    return self._result(
                        resource,
                        ReconcileAction.SKIP,
                        ReconcileOutcome.DELETED,
                        ConditionType.UNAVAILABLE,
                        f"{self.handler.display_name} was never created",
                    )
                member_id, container_id = recorded

            operation = "get"
            exists = await self.handler.exists(member_id, container_id)

            if not exists:
                if resource.deletion_requested:
                    return self._result(
                        resource,
                        ReconcileAction.SKIP,
                        ReconcileOutcome.DELETED,
                        ConditionType.UNAVAILABLE,
                        f"{self.handler.display_name} deleted",
                    )
                operation = "create"
                await self.handler.associate(member_id, container_id)
                await self._record(resource, member_id, container_id)
                return self._result(
                    resource,
                    ReconcileAction.CREATE,
                    ReconcileOutcome.CREATED,
                    ConditionType.AVAILABLE,
                )

            await self._record(resource, member_id, container_id)

            if resource.deletion_requested:
                operation = "delete"
                await self.handler.dissociate(member_id, container_id)
                return self._result(
                    resource,
                    ReconcileAction.DELETE,
                    ReconcileOutcome.DELETING,
                    ConditionType.UNAVAILABLE,
                    f"deleting {self.handler.display_name}",
                )

            return self._result(
                resource,
                ReconcileAction.SKIP,
                ReconcileOutcome.UP_TO_DATE,
                ConditionType.AVAILABLE,
            )

        except (APIError, ReferenceUnresolvedError, SelectorUnsupportedError) as e:
            return self._failure(resource, e, operation)

    async def _resolve(self, resource: DeclaredResource) -> Tuple[str, str]:
        member_ref, container_ref = self.handler.references(resource.spec)
        member_id = await self.resolver.resolve(
            member_ref, self.handler.member_kinds, kind=resource.kind, name=resource.name
        )
        container_id = await self.resolver.resolve(
            container_ref, self.handler.container_kinds, kind=resource.kind, name=resource.name
        )
        return member_id, container_id

    async def _record(self, resource: DeclaredResource, member_id: str, container_id: str) -> None:
        identity = self.handler.join_identity(member_id, container_id)
        resource.status.record(identity, identity, await self.handler.observe(member_id, container_id))


def reconciler_for(handler: Any, resolver: IdentityResolver) -> BaseReconciler:
    """Pick the engine matching a handler's contract."""
    if isinstance(handler, BindingHandler):
        return BindingReconciler(handler, resolver)
    return ResourceReconciler(handler, resolver)

