"""Output formatters for CLI commands."""

from typing import Dict, List, Sequence

from rich.console import Console
from rich.table import Table

from pocketid_sync.config.models import SyncConfig
from pocketid_sync.core.declared import ConditionType, DeclaredResource
from pocketid_sync.resources.base import ReconcileOutcome, ReconcileResult
from pocketid_sync.security.validation import sanitize_log_input

OUTCOME_STYLES: Dict[ReconcileOutcome, str] = {
    ReconcileOutcome.CREATED: "green",
    ReconcileOutcome.UPDATED: "yellow",
    ReconcileOutcome.UP_TO_DATE: "dim",
    ReconcileOutcome.DELETING: "magenta",
    ReconcileOutcome.DELETED: "magenta",
    ReconcileOutcome.NOT_READY: "blue",
    ReconcileOutcome.FAILED: "red",
}

CONDITION_STYLES: Dict[ConditionType, str] = {
    ConditionType.AVAILABLE: "green",
    ConditionType.UNAVAILABLE: "red",
    ConditionType.INVARIANT_VIOLATED: "red",
    ConditionType.UNRESOLVED: "yellow",
}


class ResultFormatter:
    """Formats reconciliation results for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_results_table(self, results: Sequence[ReconcileResult]) -> None:
        """Display one row per reconciled resource."""
        if not results:
            self.console.print("[yellow]No resources declared[/yellow]")
            return

        table = Table(title="Reconciliation Results")
        table.add_column("Kind", style="cyan")
        table.add_column("Name", style="magenta")
        table.add_column("Action")
        table.add_column("Outcome")
        table.add_column("External ID", style="white")
        table.add_column("Message", style="white")

        for result in sorted(results, key=lambda r: (r.kind.value, r.name)):
            style = OUTCOME_STYLES.get(result.outcome, "white")
            table.add_row(
                result.kind.value,
                sanitize_log_input(result.name),
                result.action.value,
                f"[{style}]{result.outcome.value}[/{style}]",
                sanitize_log_input(result.observed_identity or "-"),
                sanitize_log_input(result.message or ""),
            )

        self.console.print(table)

    def format_summary(self, summary: Dict[str, int]) -> None:
        parts = [
            f"{key.replace('_', ' ')}: {value}"
            for key, value in summary.items()
            if value and key != "total"
        ]
        self.console.print(
            f"[bold]{summary.get('total', 0)} resources[/bold] ({', '.join(parts) or 'nothing to do'})"
        )

    def format_connection_details(self, results: Sequence[ReconcileResult]) -> None:
        """Show credentials produced on creation. They are not persisted anywhere."""
        with_details = [r for r in results if r.connection_details]
        if not with_details:
            return

        table = Table(title="Connection Details (shown once)")
        table.add_column("Kind", style="cyan")
        table.add_column("Name", style="magenta")
        table.add_column("Key", style="white")
        table.add_column("Value", style="green")

        for result in with_details:
            for key, value in result.connection_details.items():
                table.add_row(result.kind.value, sanitize_log_input(result.name), key, value)

        self.console.print(table)


class StatusFormatter:
    """Formats persisted resource status for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_status_table(self, resources: List[DeclaredResource]) -> None:
        if not resources:
            self.console.print("[yellow]No resource state found[/yellow]")
            return

        table = Table(title="Resource Status")
        table.add_column("Kind", style="cyan")
        table.add_column("Name", style="magenta")
        table.add_column("External ID", style="white")
        table.add_column("Stable Name", style="white")
        table.add_column("Condition")
        table.add_column("Message", style="white")

        for resource in resources:
            status = resource.status
            condition = status.condition_type
            if condition is None:
                condition_text = "[dim]pending[/dim]"
            else:
                style = CONDITION_STYLES.get(condition, "white")
                condition_text = f"[{style}]{condition.value}[/{style}]"
            if resource.deletion_requested:
                condition_text += " [magenta](deleting)[/magenta]"

            table.add_row(
                resource.kind.value,
                sanitize_log_input(resource.name),
                sanitize_log_input(status.observed_identity or "-"),
                sanitize_log_input(status.stable_name or "-"),
                condition_text,
                sanitize_log_input(status.condition.message if status.condition else ""),
            )

        self.console.print(table)


class ConfigFormatter:
    """Formats configuration information for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_config_summary(self, config: SyncConfig) -> None:
        table = Table(title="Configuration Summary")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Pocket ID Endpoint", sanitize_log_input(config.pocketid.endpoint))
        table.add_row("Rate Limit", f"{config.pocketid.rate_limit_per_minute}/min")
        table.add_row("Poll Interval", f"{config.reconcile.poll_interval_seconds}s")
        table.add_row(
            "Cycle Timeout",
            f"{config.reconcile.cycle_timeout_seconds}s"
            if config.reconcile.cycle_timeout_seconds else "none",
        )
        table.add_row("State Directory", sanitize_log_input(str(config.state_management.state_dir)))

        counts: Dict[str, int] = {}
        for resource in config.resources:
            counts[resource.kind.value] = counts.get(resource.kind.value, 0) + 1
        for kind, count in sorted(counts.items()):
            table.add_row(f"{kind} resources", str(count))

        self.console.print(table)
