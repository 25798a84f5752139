from __future__ import annotations

"""Capability runtime registry.

``CapabilityRuntime`` owns at most one ``CapabilityEnforcer`` and one
``CapabilityStorage``. A host creates one runtime at startup and passes it to
whatever needs capability decisions; tests create a fresh runtime per test.
There is no module-level instance.
"""

import logging
import threading
from typing import Any, Mapping, Optional, Union

from .enforcer import CapabilityEnforcer
from .models import CapabilitiesConfig
from .storage import CapabilityStorage, CapabilityStorageConfig

logger = logging.getLogger(__name__)


class CapabilityRuntime:
    """
    Lazily constructed enforcer and storage for one host runtime.

    Notes:
        - ``get_enforcer`` with a config updates an existing enforcer in place.
        - ``get_storage`` ignores the config once the storage exists.
        - ``reset_*`` tears the component down; the next ``get_*`` builds a new one.
    """

    def __init__(
        self,
        enforcer_config: Optional[Union[CapabilitiesConfig, Mapping[str, Any]]] = None,
        storage_config: Optional[Union[CapabilityStorageConfig, Mapping[str, Any]]] = None,
    ) -> None:
        self._enforcer_config = enforcer_config
        self._storage_config = storage_config
        self._enforcer: Optional[CapabilityEnforcer] = None
        self._storage: Optional[CapabilityStorage] = None
        self._lock = threading.Lock()

    def get_enforcer(
        self, config: Optional[Union[CapabilitiesConfig, Mapping[str, Any]]] = None
    ) -> CapabilityEnforcer:
        """
        Return the runtime's enforcer, building it on first access.

        Args:
            config: When the enforcer already exists, replaces its configuration.
                On first access it takes precedence over the runtime's
                ``enforcer_config``.

        Raises:
            CapabilityConfigurationError: If the configuration does not validate.
        """
        with self._lock:
            if self._enforcer is None:
                self._enforcer = CapabilityEnforcer(config if config is not None else self._enforcer_config)
                logger.debug("Created capability enforcer")
            elif config is not None:
                self._enforcer.update_config(config)
            return self._enforcer

    def reset_enforcer(self) -> None:
        """Drop the enforcer; the next ``get_enforcer`` builds a new one."""
        with self._lock:
            self._enforcer = None

    def get_storage(
        self, config: Optional[Union[CapabilityStorageConfig, Mapping[str, Any]]] = None
    ) -> CapabilityStorage:
        """Return the runtime's storage, building it on first access."""
        with self._lock:
            if self._storage is None:
                self._storage = CapabilityStorage(config if config is not None else self._storage_config)
                logger.debug("Created capability storage")
            return self._storage

    def reset_storage(self) -> None:
        """Clear and drop the storage; the next ``get_storage`` builds an empty one."""
        with self._lock:
            if self._storage is not None:
                self._storage.clear()
            self._storage = None

    def reset(self) -> None:
        """Reset both components."""
        self.reset_enforcer()
        self.reset_storage()
