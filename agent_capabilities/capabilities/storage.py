"""In-memory capability repository.

``CapabilityStorage`` keeps two independent slots per entity id:

- a *chain*: the per-scope patches a caller resolves for that entity, and
- an *override*: a single out-of-band patch, e.g. an emergency admin
  restriction.

The storage performs no merging of its own. Durable persistence is the host's
job; ``export_snapshot``/``load_snapshot`` hand the contents over as plain,
JSON-compatible data.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from pydantic import Field, ValidationError

from ..schemas.base import BaseSchema
from .errors import CapabilityConfigurationError
from .models import CapabilityChain, CapabilitySetPatch, CapabilityScope, PatchLike
from .resolver import coerce_patch

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class CapabilityStorageConfig(BaseSchema):
    """Storage configuration. ``enabled`` documents intended use and does not gate operations."""

    enabled: bool = Field(default=True, description="Whether the host intends to use capability storage.")


def coerce_storage_config(
    config: Optional[Union[CapabilityStorageConfig, Mapping[str, Any]]],
) -> CapabilityStorageConfig:
    """Validate storage configuration, converting validation failures into configuration errors."""
    if config is None:
        return CapabilityStorageConfig()
    if isinstance(config, CapabilityStorageConfig):
        return config
    try:
        return CapabilityStorageConfig.model_validate(config)
    except ValidationError as e:
        logger.error(f"Invalid capability storage configuration: {e}")
        raise CapabilityConfigurationError(f"Invalid capability storage configuration: {e}") from e


@runtime_checkable
class CapabilityRepository(Protocol):
    """Store and retrieve per-entity capability chains and overrides.

    "Not found" is always ``None`` (or ``False`` for removals), never an
    exception.
    """

    def get_chain(self, entity_id: str) -> Optional[CapabilityChain]: ...

    def set_chain(self, entity_id: str, chain: Mapping[Any, PatchLike]) -> None: ...

    def remove_chain(self, entity_id: str) -> bool: ...

    def get_override(self, entity_id: str) -> Optional[CapabilitySetPatch]: ...

    def set_override(self, entity_id: str, override: PatchLike) -> None: ...

    def remove_override(self, entity_id: str) -> bool: ...

    def list_entities(self) -> List[str]: ...

    def clear(self) -> None: ...


def _copy_chain(chain: Mapping[Any, PatchLike]) -> CapabilityChain:
    if not isinstance(chain, Mapping):
        raise CapabilityConfigurationError(f"Capability chain must be a mapping, got {type(chain).__name__}")
    copied: CapabilityChain = {}
    for scope, patch in chain.items():
        key = scope.value if isinstance(scope, CapabilityScope) else str(scope)
        copied[key] = coerce_patch(patch).model_copy(deep=True)
    return copied


class CapabilityStorage(CapabilityRepository):
    """
    Process-lifetime, in-memory ``CapabilityRepository``.

    Values are copied on the way in and on the way out so callers cannot
    change stored state through a reference they still hold. All access is
    serialized with a re-entrant lock.
    """

    def __init__(self, config: Optional[Union[CapabilityStorageConfig, Mapping[str, Any]]] = None) -> None:
        self._config = coerce_storage_config(config)
        self._chains: Dict[str, CapabilityChain] = {}
        self._overrides: Dict[str, CapabilitySetPatch] = {}
        self._lock = threading.RLock()

    @property
    def config(self) -> CapabilityStorageConfig:
        """Return the storage configuration."""
        return self._config

    def get_chain(self, entity_id: str) -> Optional[CapabilityChain]:
        """Return a copy of the entity's chain, or ``None`` when it has none."""
        with self._lock:
            chain = self._chains.get(entity_id)
            return _copy_chain(chain) if chain is not None else None

    def set_chain(self, entity_id: str, chain: Mapping[Any, PatchLike]) -> None:
        """Store (or replace) the entity's chain."""
        copied = _copy_chain(chain)
        with self._lock:
            self._chains[entity_id] = copied
        logger.debug(f"Stored capability chain for '{entity_id}' with scopes {list(copied)}")

    def remove_chain(self, entity_id: str) -> bool:
        """Remove the entity's chain. Returns True iff one was stored."""
        with self._lock:
            return self._chains.pop(entity_id, None) is not None

    def get_override(self, entity_id: str) -> Optional[CapabilitySetPatch]:
        """Return a copy of the entity's override, or ``None`` when it has none."""
        with self._lock:
            override = self._overrides.get(entity_id)
            return override.model_copy(deep=True) if override is not None else None

    def set_override(self, entity_id: str, override: PatchLike) -> None:
        """Store (or replace) the entity's override."""
        copied = coerce_patch(override).model_copy(deep=True)
        with self._lock:
            self._overrides[entity_id] = copied
        logger.debug(f"Stored capability override for '{entity_id}'")

    def remove_override(self, entity_id: str) -> bool:
        """Remove the entity's override. Returns True iff one was stored."""
        with self._lock:
            return self._overrides.pop(entity_id, None) is not None

    def list_entities(self) -> List[str]:
        """Return every id holding a chain or an override, each once, in insertion order."""
        with self._lock:
            return list(dict.fromkeys([*self._chains, *self._overrides]))

    def clear(self) -> None:
        """Drop all chains and overrides."""
        with self._lock:
            self._chains.clear()
            self._overrides.clear()

    def export_snapshot(self) -> Dict[str, Any]:
        """
        Export the storage contents as JSON-compatible data.

        Patches are dumped with ``exclude_none`` so a reloaded snapshot keeps
        "no opinion" fields absent.

        Returns:
            ``{"version", "saved_at", "chains", "overrides"}``.
        """
        with self._lock:
            chains = {
                entity_id: {scope: patch.model_dump(mode="json", exclude_none=True) for scope, patch in chain.items()}
                for entity_id, chain in self._chains.items()
            }
            overrides = {
                entity_id: patch.model_dump(mode="json", exclude_none=True)
                for entity_id, patch in self._overrides.items()
            }
        return {
            "version": SNAPSHOT_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "chains": chains,
            "overrides": overrides,
        }

    def load_snapshot(self, data: Mapping[str, Any]) -> None:
        """
        Replace the storage contents with a snapshot produced by ``export_snapshot``.

        The snapshot is fully validated before anything is replaced.

        Raises:
            CapabilityConfigurationError: If the version is unsupported or the data is malformed.
        """
        if not isinstance(data, Mapping):
            raise CapabilityConfigurationError(
                f"Capability snapshot must be a mapping, got {type(data).__name__}"
            )
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise CapabilityConfigurationError(f"Unsupported capability snapshot version: {version!r}")

        raw_chains = data.get("chains") or {}
        raw_overrides = data.get("overrides") or {}
        if not isinstance(raw_chains, Mapping) or not isinstance(raw_overrides, Mapping):
            raise CapabilityConfigurationError("Capability snapshot 'chains' and 'overrides' must be mappings")

        chains: Dict[str, CapabilityChain] = {}
        for entity_id, chain in raw_chains.items():
            if not isinstance(chain, Mapping):
                raise CapabilityConfigurationError(f"Capability chain for '{entity_id}' must be a mapping")
            chains[str(entity_id)] = _copy_chain(chain)
        overrides = {str(entity_id): coerce_patch(patch) for entity_id, patch in raw_overrides.items()}

        with self._lock:
            self._chains = chains
            self._overrides = overrides
        logger.info(f"Loaded capability snapshot: {len(chains)} chains, {len(overrides)} overrides")
