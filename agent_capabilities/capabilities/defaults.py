"""Static capability data: level tables, the default set, presets and the
host-config adapter.

Nothing in this module is mutated at runtime. Total sets are frozen and the
level table is read-only. Patch accessors return deep copies so callers can
edit what they receive without touching the shared constants.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError

from .errors import CapabilityConfigurationError, UnknownPresetError
from .models import (
    ApprovalLevel,
    ApprovalPatch,
    AssistantCapabilitySet,
    BudgetLimitsPatch,
    BudgetPatch,
    CapabilitiesConfig,
    CapabilityScope,
    CapabilitySetPatch,
    CommunicationPatch,
    MemoryPatch,
    OrchestrationCapabilities,
    OrchestrationLevel,
    OrchestrationPatch,
    SkillPatch,
    ToolAccessPolicy,
    ToolPatch,
)

logger = logging.getLogger(__name__)


def _level(
    level: OrchestrationLevel,
    spawn: bool,
    concurrent: int,
    depth: int,
    swarms: bool,
    swarm_size: int,
    delegate: bool,
) -> OrchestrationCapabilities:
    return OrchestrationCapabilities(
        level=level,
        can_spawn_subassistants=spawn,
        max_concurrent_subassistants=concurrent,
        max_subassistant_depth=depth,
        can_coordinate_swarms=swarms,
        max_swarm_size=swarm_size,
        can_delegate=delegate,
    )


ORCHESTRATION_DEFAULTS: Mapping[OrchestrationLevel, OrchestrationCapabilities] = MappingProxyType(
    {
        OrchestrationLevel.none: _level(OrchestrationLevel.none, False, 0, 0, False, 0, False),
        OrchestrationLevel.limited: _level(OrchestrationLevel.limited, True, 2, 1, False, 0, False),
        OrchestrationLevel.standard: _level(OrchestrationLevel.standard, True, 5, 3, False, 0, True),
        OrchestrationLevel.full: _level(OrchestrationLevel.full, True, 10, 5, True, 10, True),
        OrchestrationLevel.coordinator: _level(OrchestrationLevel.coordinator, True, 20, 10, True, 50, True),
    }
)

# Baseline the enforcer ratchets against; configuration can only narrow it.
BASELINE_ORCHESTRATION_LEVEL = OrchestrationLevel.standard

DEFAULT_CAPABILITY_SET = AssistantCapabilitySet(
    enabled=True,
    orchestration=ORCHESTRATION_DEFAULTS[BASELINE_ORCHESTRATION_LEVEL].model_copy(deep=True),
)

# Private copy every resolution starts from; the public constant is for reading.
_BASELINE_CAPABILITY_SET = DEFAULT_CAPABILITY_SET.model_copy(deep=True)

RESTRICTED_CAPABILITY_SET = CapabilitySetPatch(
    orchestration=OrchestrationPatch(**ORCHESTRATION_DEFAULTS[OrchestrationLevel.none].model_dump()),
    tools=ToolPatch(
        policy=ToolAccessPolicy.allow_list,
        capabilities={"file:read": True, "file:list": True},
    ),
    skills=SkillPatch(policy=ToolAccessPolicy.deny_list, capabilities={}),
    budget=BudgetPatch(
        limits=BudgetLimitsPatch(
            max_total_tokens=50_000,
            max_llm_calls=10,
            max_tool_calls=20,
            max_duration_ms=5 * 60 * 1000,
        ),
        can_override_budget=False,
        shared_budget=False,
    ),
    approval=ApprovalPatch(default_level=ApprovalLevel.require),
    communication=CommunicationPatch(can_send_messages=False, can_receive_messages=True, can_broadcast=False),
    memory=MemoryPatch(can_access_global_memory=False, allowed_memory_scopes=[], can_write_memory=False),
)

COORDINATOR_CAPABILITY_SET = CapabilitySetPatch(
    orchestration=OrchestrationPatch(**ORCHESTRATION_DEFAULTS[OrchestrationLevel.coordinator].model_dump()),
    tools=ToolPatch(policy=ToolAccessPolicy.allow_all, capabilities={}),
    budget=BudgetPatch(
        limits=BudgetLimitsPatch(
            max_total_tokens=2_000_000,
            max_llm_calls=500,
            max_tool_calls=1000,
            max_duration_ms=60 * 60 * 1000,
        ),
        can_override_budget=True,
        shared_budget=True,
    ),
    communication=CommunicationPatch(can_send_messages=True, can_receive_messages=True, can_broadcast=True),
)


def baseline_capability_set() -> AssistantCapabilitySet:
    """Return a fresh copy of the set every resolution starts from."""
    return _BASELINE_CAPABILITY_SET.model_copy(deep=True)


def _as_patch(capabilities: AssistantCapabilitySet) -> CapabilitySetPatch:
    return CapabilitySetPatch.model_validate(capabilities.model_dump())


_PRESETS: Dict[str, CapabilitySetPatch] = {
    "default": _as_patch(_BASELINE_CAPABILITY_SET),
    "restricted": RESTRICTED_CAPABILITY_SET,
    "coordinator": COORDINATOR_CAPABILITY_SET,
}


def get_capability_preset(name: str) -> CapabilitySetPatch:
    """
    Return a copy of a named preset.

    Args:
        name: One of ``default``, ``restricted`` or ``coordinator``.

    Returns:
        The preset as a patch, ready to be placed in a chain.

    Raises:
        UnknownPresetError: If the name is not a known preset.
    """
    preset = _PRESETS.get(name)
    if preset is None:
        logger.error(f"Unknown capability preset requested: {name!r}")
        raise UnknownPresetError(name, tuple(_PRESETS))
    return preset.model_copy(deep=True)


def get_default_capabilities(scope: Union[CapabilityScope, str]) -> CapabilitySetPatch:
    """
    Return the defaults a scope starts with.

    Only the assistant scope seeds the full default set; every other scope
    starts with no opinion.
    """
    try:
        resolved_scope = CapabilityScope(scope)
    except ValueError as e:
        raise CapabilityConfigurationError(f"Unknown capability scope: {scope!r}") from e
    if resolved_scope == CapabilityScope.assistant:
        return _as_patch(_BASELINE_CAPABILITY_SET)
    return CapabilitySetPatch()


def coerce_config(config: Union[CapabilitiesConfig, Mapping[str, Any]]) -> CapabilitiesConfig:
    """Validate host configuration, converting validation failures into configuration errors."""
    if isinstance(config, CapabilitiesConfig):
        return config
    try:
        return CapabilitiesConfig.model_validate(config)
    except ValidationError as e:
        logger.error(f"Invalid capabilities configuration: {e}")
        raise CapabilityConfigurationError(f"Invalid capabilities configuration: {e}") from e


def config_to_capabilities(config: Union[CapabilitiesConfig, Mapping[str, Any]]) -> CapabilitySetPatch:
    """
    Convert simplified host configuration into an assistant-scope patch.

    The orchestration level selects a row of ``ORCHESTRATION_DEFAULTS``; explicit
    numeric limits in the config then replace that row's values. This is a
    plain overwrite inside one conversion, not the restrictive cross-scope merge
    the resolver applies afterwards.

    Args:
        config: A ``CapabilitiesConfig`` or an equivalent mapping.

    Returns:
        The patch describing this configuration.

    Raises:
        CapabilityConfigurationError: If the mapping does not validate.
    """
    cfg = coerce_config(config)
    patch = CapabilitySetPatch(enabled=cfg.enabled)

    has_numeric = cfg.max_concurrent_subassistants is not None or cfg.max_subassistant_depth is not None
    if cfg.orchestration_level is not None or has_numeric:
        level = cfg.orchestration_level or BASELINE_ORCHESTRATION_LEVEL
        orchestration = OrchestrationPatch(**ORCHESTRATION_DEFAULTS[level].model_dump())
        if cfg.max_concurrent_subassistants is not None:
            orchestration.max_concurrent_subassistants = cfg.max_concurrent_subassistants
        if cfg.max_subassistant_depth is not None:
            orchestration.max_subassistant_depth = cfg.max_subassistant_depth
        patch.orchestration = orchestration

    if cfg.allowed_delegates is not None:
        if patch.orchestration is None:
            patch.orchestration = OrchestrationPatch()
        patch.orchestration.allowed_delegates = list(cfg.allowed_delegates)

    if cfg.tool_policy is not None:
        rules: Dict[str, bool] = {}
        if cfg.tool_policy == ToolAccessPolicy.allow_list:
            rules = {pattern: True for pattern in cfg.allowed_tools}
        elif cfg.tool_policy == ToolAccessPolicy.deny_list:
            rules = {pattern: False for pattern in cfg.denied_tools}
        patch.tools = ToolPatch(policy=cfg.tool_policy, capabilities=rules)

    return patch
