"""Persistent store of declared resources and their observed status."""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from pocketid_sync.core.declared import DeclaredResource, ResourceDeclaration, ResourceKind

logger = structlog.get_logger(__name__)

ResourceKey = Tuple[ResourceKind, str]


class ResourceStore:
    """Keeps every declared resource keyed by (kind, name).

    Status written by reconciliation survives restarts: the store is saved
    as a single JSON document under ``state_dir`` with a backup of the
    previous version.
    """

    STATE_FILE = "resources.json"

    def __init__(self, state_dir: Path = Path("./state")) -> None:
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._resources: Dict[ResourceKey, DeclaredResource] = {}
        self._logger = logger.bind(state_dir=str(self.state_dir))

    @property
    def state_file(self) -> Path:
        return self.state_dir / self.STATE_FILE

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, key: ResourceKey) -> bool:
        return key in self._resources

    def get(self, kind: ResourceKind, name: str) -> Optional[DeclaredResource]:
        return self._resources.get((kind, name))

    def put(self, resource: DeclaredResource) -> None:
        self._resources[resource.key] = resource

    def remove(self, kind: ResourceKind, name: str) -> Optional[DeclaredResource]:
        return self._resources.pop((kind, name), None)

    def list(self, kind: Optional[ResourceKind] = None) -> List[DeclaredResource]:
        """List resources, optionally restricted to one kind, in a stable order."""
        resources = [
            r for r in self._resources.values() if kind is None or r.kind == kind
        ]
        return sorted(resources, key=lambda r: (r.kind.value, r.name))

    def apply_declarations(self, declared: Iterable[ResourceDeclaration]) -> Dict[str, int]:
        """Replace desired state with a new set of declarations.

        Status already recorded for a (kind, name) is carried over so that
        observed identities and stable names are never lost. Resources that
        are no longer declared are marked for deletion and stay in the store
        until reconciliation reports them deleted.

        Returns:
            Counts of added, updated and deletion-requested resources
        """
        counts = {"added": 0, "updated": 0, "deletion_requested": 0}
        seen = set()

        for declaration in declared:
            resource = declaration.to_resource()
            seen.add(resource.key)
            existing = self._resources.get(resource.key)
            if existing is None:
                counts["added"] += 1
                self._resources[resource.key] = resource
                continue

            resource.status = existing.status
            if existing.spec != resource.spec or existing.deletion_requested:
                counts["updated"] += 1
            self._resources[resource.key] = resource

        for key, resource in self._resources.items():
            if key not in seen and not resource.deletion_requested:
                resource.deletion_requested = True
                counts["deletion_requested"] += 1

        self._logger.info("Applied declarations", **counts, total=len(self._resources))
        return counts

    def load(self) -> bool:
        """Load previously saved resources.

        Returns:
            True if a state file was loaded, False if none exists or it is unreadable
        """
        if not self.state_file.exists():
            self._logger.debug("No resource state file found", file=str(self.state_file))
            return False

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            resources = [DeclaredResource.model_validate(r) for r in data.get("resources", [])]
        except (OSError, ValueError, ValidationError) as e:
            self._logger.error("Failed to load resource state", error=str(e))
            return False

        self._resources = {r.key: r for r in resources}
        self._logger.info("Loaded resource state", resources=len(self._resources))
        return True

    def save(self) -> bool:
        """Write all resources to disk, keeping a backup of the previous file.

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            if self.state_file.exists():
                self.state_file.replace(self.state_file.with_suffix(".json.backup"))

            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(
                    {"resources": [r.to_record() for r in self.list()]},
                    f,
                    indent=2,
                    default=str,
                )
        except OSError as e:
            self._logger.error("Failed to save resource state", error=str(e))
            return False

        self._logger.debug("Saved resource state", resources=len(self._resources))
        return True
