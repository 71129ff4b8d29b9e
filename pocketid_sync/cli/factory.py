"""Factories for building clients and reconciliation components from configuration."""

from typing import Dict

import structlog

from pocketid_sync.clients.pocketid import PocketIDClient
from pocketid_sync.config.models import PocketIDConfig, SyncConfig
from pocketid_sync.core.declared import ResourceKind
from pocketid_sync.core.resolver import IdentityResolver
from pocketid_sync.core.scheduler import DeclarationSource, ReconcileScheduler
from pocketid_sync.core.state import ResourceStore
from pocketid_sync.resources import build_reconcilers
from pocketid_sync.resources.base import BaseReconciler
from pocketid_sync.security.validation import sanitize_log_input

logger = structlog.get_logger(__name__)


class ClientFactory:
    """Factory for creating API clients from configuration."""

    @staticmethod
    def create_pocketid_client(config: PocketIDConfig) -> PocketIDClient:
        """Create a Pocket ID client from configuration.

        Raises:
            ValueError: If configuration is invalid
        """
        try:
            return PocketIDClient(
                endpoint=config.endpoint,
                api_key=config.api_key,
                timeout_seconds=config.timeout_seconds,
                rate_limit_per_minute=config.rate_limit_per_minute,
                max_retries=config.max_retries,
                retry_delay_seconds=config.retry_delay_seconds,
            )
        except ValueError as e:
            logger.error(
                "Failed to create Pocket ID client",
                endpoint=sanitize_log_input(config.endpoint),
                error=sanitize_log_input(str(e)),
            )
            raise ValueError(f"Failed to create Pocket ID client: {e}") from e

    @staticmethod
    async def validate_client(client: PocketIDClient) -> bool:
        """Check that the client can reach the API with its credentials."""
        healthy = await client.health_check()
        logger.info(
            "Pocket ID health check",
            healthy=healthy,
            endpoint=sanitize_log_input(client.base_url),
        )
        return healthy


class ComponentFactory:
    """Factory for creating reconciliation components."""

    @staticmethod
    def create_store(config: SyncConfig) -> ResourceStore:
        """Create the resource store and load any previously saved status."""
        store = ResourceStore(state_dir=config.state_management.state_dir)
        store.load()
        return store

    @staticmethod
    def create_reconcilers(
        client: PocketIDClient,
        store: ResourceStore,
    ) -> Dict[ResourceKind, BaseReconciler]:
        return build_reconcilers(client, IdentityResolver(store))

    @staticmethod
    def create_scheduler(
        client: PocketIDClient,
        store: ResourceStore,
        config: SyncConfig,
        declarations: DeclarationSource,
    ) -> ReconcileScheduler:
        """Create a scheduler wired to every reconciler."""
        return ReconcileScheduler(
            store=store,
            reconcilers=ComponentFactory.create_reconcilers(client, store),
            poll_interval_seconds=config.reconcile.poll_interval_seconds,
            cycle_timeout_seconds=config.reconcile.cycle_timeout_seconds,
            max_concurrent=config.reconcile.max_concurrent,
            declarations=declarations,
        )
