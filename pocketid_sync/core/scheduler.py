"""Scheduling of reconciliation cycles across all declared resources."""

import asyncio
import uuid
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from pocketid_sync.core.declared import (
    ConditionType,
    DeclaredResource,
    ResourceDeclaration,
    ResourceKind,
)
from pocketid_sync.core.state import ResourceKey, ResourceStore
from pocketid_sync.resources.base import (
    BaseReconciler,
    ReconcileAction,
    ReconcileOutcome,
    ReconcileResult,
)

logger = structlog.get_logger(__name__)

DeclarationSource = Callable[[], Optional[Sequence[ResourceDeclaration]]]


class ReconcileScheduler:
    """Runs one reconciliation cycle per declared resource, repeatedly.

    Cycles for different resources run concurrently; cycles for the same
    resource never overlap. Resources reported deleted are dropped from the
    store, and the store is saved after every pass.
    """

    def __init__(
        self,
        store: ResourceStore,
        reconcilers: Mapping[ResourceKind, BaseReconciler],
        poll_interval_seconds: float = 60.0,
        cycle_timeout_seconds: Optional[float] = None,
        max_concurrent: int = 10,
        declarations: Optional[DeclarationSource] = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Resource store holding desired state and status
            reconcilers: Reconciler for each resource kind
            poll_interval_seconds: Time between passes when nothing changes
            cycle_timeout_seconds: Deadline for a single cycle, or None for no deadline
            max_concurrent: Maximum number of cycles in flight at once
            declarations: Callable returning new declarations, or None when unchanged
        """
        self.store = store
        self.reconcilers = dict(reconcilers)
        self.poll_interval_seconds = poll_interval_seconds
        self.cycle_timeout_seconds = cycle_timeout_seconds
        self.max_concurrent = max_concurrent
        self.declarations = declarations

        self._locks: Dict[ResourceKey, asyncio.Lock] = {}
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._changed = asyncio.Event()
        self._pass_count = 0
        self._logger = logger.bind(component="ReconcileScheduler")

    def notify_changed(self) -> None:
        """Wake the run loop early because declared state changed."""
        self._changed.set()

    async def reconcile_resource(self, resource: DeclaredResource) -> ReconcileResult:
        """Run one cycle for a resource, honoring the per-resource lock and deadline."""
        lock = self._locks.setdefault(resource.key, asyncio.Lock())
        async with lock, self._semaphore:
            reconciler = self.reconcilers.get(resource.kind)
            if reconciler is None:
                return self._failed(resource, f"no reconciler registered for {resource.kind.value}")

            try:
                if self.cycle_timeout_seconds:
                    return await asyncio.wait_for(
                        reconciler.reconcile(resource), timeout=self.cycle_timeout_seconds
                    )
                return await reconciler.reconcile(resource)
            except asyncio.TimeoutError:
                return self._failed(
                    resource,
                    f"reconciliation exceeded {self.cycle_timeout_seconds}s deadline",
                )
            except Exception as e:
                self._logger.exception(
                    "Unexpected error during reconciliation",
                    kind=resource.kind.value,
                    name=resource.name,
                )
                return self._failed(resource, f"unexpected error: {e}")

    async def run_once(self) -> List[ReconcileResult]:
        """Run one pass: refresh declarations, reconcile everything, persist."""
        self._pass_count += 1
        pass_logger = self._logger.bind(pass_number=self._pass_count)

        if self.declarations is not None:
            declared = self.declarations()
            if declared is not None:
                self.store.apply_declarations(declared)

        resources = self.store.list()
        pass_logger.info("Starting reconciliation pass", resources=len(resources))

        results = list(
            await asyncio.gather(*(self.reconcile_resource(r) for r in resources))
        )

        for result in results:
            if result.outcome == ReconcileOutcome.DELETED:
                self.store.remove(result.kind, result.name)
                self._locks.pop((result.kind, result.name), None)

        self.store.save()

        summary = self.summarize(results)
        pass_logger.info("Completed reconciliation pass", **summary)
        return results

    async def run_forever(self, stop: Optional[asyncio.Event] = None) -> None:
        """Run passes on the poll interval or as soon as a change is notified."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            # Changes notified while a pass runs wake the next wait immediately
            self._changed.clear()
            await self.run_once()

            waiters = [
                asyncio.ensure_future(self._changed.wait()),
                asyncio.ensure_future(stop.wait()),
            ]
            try:
                await asyncio.wait(
                    waiters,
                    timeout=self.poll_interval_seconds,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                for waiter in waiters:
                    waiter.cancel()

        self._logger.info("Reconciliation loop stopped", passes=self._pass_count)

    @staticmethod
    def summarize(results: Sequence[ReconcileResult]) -> Dict[str, int]:
        """Count results by outcome."""
        summary = {outcome.value: 0 for outcome in ReconcileOutcome}
        for result in results:
            summary[result.outcome.value] += 1
        summary["total"] = len(results)
        return summary

    def _failed(self, resource: DeclaredResource, message: str) -> ReconcileResult:
        resource.status.set_condition(ConditionType.UNAVAILABLE, message)
        self._logger.error(
            "Reconciliation failed",
            kind=resource.kind.value,
            name=resource.name,
            message=message,
        )
        return ReconcileResult(
            operation_id=str(uuid.uuid4()),
            kind=resource.kind,
            name=resource.name,
            action=ReconcileAction.ERROR,
            outcome=ReconcileOutcome.FAILED,
            success=False,
            observed_identity=resource.status.observed_identity or None,
            condition=ConditionType.UNAVAILABLE,
            message=message,
        )
