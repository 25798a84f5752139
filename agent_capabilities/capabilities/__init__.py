"""Capability resolution, storage and enforcement.

This package decides what an assistant or sub-assistant is permitted to do.

- ``models``: enums, total capability sets and per-scope patches.
- ``defaults``: orchestration level table, the default set, presets and the
  host-config adapter ``config_to_capabilities``.
- ``resolver``: folds a chain of per-scope patches into one
  ``ResolvedCapabilitySet`` with override and restrictive merge rules.
- ``storage``: in-memory per-entity chains and overrides.
- ``enforcer``: runtime guard answering spawn/tool/delegate/swarm checks.
- ``runtime``: ``CapabilityRuntime``, the host-owned holder of one enforcer
  and one storage.
"""

from .defaults import (
    COORDINATOR_CAPABILITY_SET,
    DEFAULT_CAPABILITY_SET,
    ORCHESTRATION_DEFAULTS,
    RESTRICTED_CAPABILITY_SET,
    config_to_capabilities,
    get_capability_preset,
    get_default_capabilities,
)
from .enforcer import CapabilityCheckContext, CapabilityEnforcer, EnforcementResult
from .errors import CapabilityConfigurationError, CapabilityError, UnknownPresetError
from .models import (
    SCOPE_PRECEDENCE,
    ApprovalLevel,
    AssistantCapabilitySet,
    CapabilitiesConfig,
    CapabilityChain,
    CapabilityScope,
    CapabilitySetPatch,
    OrchestrationLevel,
    ResolvedCapabilitySet,
    ToolAccessPolicy,
)
from .resolver import (
    apply_capability_patch,
    create_capability_chain,
    extend_capability_chain,
    resolve_capability_chain,
    resolve_entity_capabilities,
)
from .runtime import CapabilityRuntime
from .storage import CapabilityRepository, CapabilityStorage, CapabilityStorageConfig

__all__ = [
    "ApprovalLevel",
    "AssistantCapabilitySet",
    "CapabilitiesConfig",
    "CapabilityChain",
    "CapabilityCheckContext",
    "CapabilityConfigurationError",
    "CapabilityEnforcer",
    "CapabilityError",
    "CapabilityRepository",
    "CapabilityRuntime",
    "CapabilityScope",
    "CapabilitySetPatch",
    "CapabilityStorage",
    "CapabilityStorageConfig",
    "COORDINATOR_CAPABILITY_SET",
    "DEFAULT_CAPABILITY_SET",
    "EnforcementResult",
    "ORCHESTRATION_DEFAULTS",
    "OrchestrationLevel",
    "RESTRICTED_CAPABILITY_SET",
    "ResolvedCapabilitySet",
    "SCOPE_PRECEDENCE",
    "ToolAccessPolicy",
    "UnknownPresetError",
    "apply_capability_patch",
    "config_to_capabilities",
    "create_capability_chain",
    "extend_capability_chain",
    "get_capability_preset",
    "get_default_capabilities",
    "resolve_capability_chain",
    "resolve_entity_capabilities",
]
