from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_capabilities.capabilities.defaults import (
    DEFAULT_CAPABILITY_SET,
    ORCHESTRATION_DEFAULTS,
    baseline_capability_set,
    config_to_capabilities,
    get_capability_preset,
    get_default_capabilities,
)
from agent_capabilities.capabilities.errors import CapabilityConfigurationError, UnknownPresetError
from agent_capabilities.capabilities.models import (
    ApprovalLevel,
    CapabilitiesConfig,
    CapabilityScope,
    CapabilitySetPatch,
    OrchestrationLevel,
    ToolAccessPolicy,
)

_LEVELS_LEAST_TO_MOST = [
    OrchestrationLevel.none,
    OrchestrationLevel.limited,
    OrchestrationLevel.standard,
    OrchestrationLevel.full,
    OrchestrationLevel.coordinator,
]


def test_orchestration_defaults_cover_every_level() -> None:
    assert set(ORCHESTRATION_DEFAULTS) == set(OrchestrationLevel)
    for level, caps in ORCHESTRATION_DEFAULTS.items():
        assert caps.level == level


def test_orchestration_limits_grow_with_level() -> None:
    concurrent = [ORCHESTRATION_DEFAULTS[lvl].max_concurrent_subassistants for lvl in _LEVELS_LEAST_TO_MOST]
    depth = [ORCHESTRATION_DEFAULTS[lvl].max_subassistant_depth for lvl in _LEVELS_LEAST_TO_MOST]
    assert concurrent == sorted(concurrent)
    assert depth == sorted(depth)


@pytest.mark.parametrize(
    ("level", "spawn", "swarms", "delegate"),
    [
        (OrchestrationLevel.none, False, False, False),
        (OrchestrationLevel.limited, True, False, False),
        (OrchestrationLevel.standard, True, False, True),
        (OrchestrationLevel.full, True, True, True),
        (OrchestrationLevel.coordinator, True, True, True),
    ],
)
def test_orchestration_level_rights(level: OrchestrationLevel, spawn: bool, swarms: bool, delegate: bool) -> None:
    caps = ORCHESTRATION_DEFAULTS[level]
    assert caps.can_spawn_subassistants is spawn
    assert caps.can_coordinate_swarms is swarms
    assert caps.can_delegate is delegate


def test_default_set_is_standard_and_permissive() -> None:
    d = DEFAULT_CAPABILITY_SET
    assert d.enabled is True
    assert d.orchestration.level == OrchestrationLevel.standard
    assert d.tools.policy == ToolAccessPolicy.allow_all
    assert d.skills.policy == ToolAccessPolicy.allow_all
    assert d.models.allowed == {"*": True}
    assert d.approval.default_level == ApprovalLevel.none
    assert d.communication.can_send_messages is True
    assert d.communication.can_broadcast is False
    assert d.memory.allowed_memory_scopes == ["*"]
    assert d.budget.limits.max_total_tokens is None


def test_default_set_does_not_share_the_level_table_row() -> None:
    assert DEFAULT_CAPABILITY_SET.orchestration is not ORCHESTRATION_DEFAULTS[OrchestrationLevel.standard]


def test_restricted_preset_narrows_everything() -> None:
    preset = get_capability_preset("restricted")
    assert preset.orchestration is not None
    assert preset.orchestration.level == OrchestrationLevel.none
    assert preset.tools is not None
    assert preset.tools.policy == ToolAccessPolicy.allow_list
    assert preset.tools.capabilities == {"file:read": True, "file:list": True}
    assert preset.budget is not None and preset.budget.limits is not None
    assert preset.budget.limits.max_llm_calls == 10
    assert preset.approval is not None
    assert preset.approval.default_level == ApprovalLevel.require


def test_coordinator_preset_allows_broadcast() -> None:
    preset = get_capability_preset("coordinator")
    assert preset.orchestration is not None
    assert preset.orchestration.level == OrchestrationLevel.coordinator
    assert preset.communication is not None
    assert preset.communication.can_broadcast is True


def test_default_preset_matches_default_set() -> None:
    preset = get_capability_preset("default")
    assert preset.orchestration is not None
    assert preset.orchestration.level == OrchestrationLevel.standard
    assert preset.enabled is True


def test_preset_returns_independent_copies() -> None:
    first = get_capability_preset("restricted")
    assert first.tools is not None and first.tools.capabilities is not None
    first.tools.capabilities["bash"] = True

    second = get_capability_preset("restricted")
    assert second.tools is not None
    assert "bash" not in (second.tools.capabilities or {})


def test_unknown_preset_raises_configuration_error() -> None:
    with pytest.raises(UnknownPresetError) as exc_info:
        get_capability_preset("superuser")

    assert isinstance(exc_info.value, CapabilityConfigurationError)
    assert isinstance(exc_info.value, ValueError)
    assert "superuser" in str(exc_info.value)


def test_default_capabilities_only_seed_assistant_scope() -> None:
    assistant = get_default_capabilities(CapabilityScope.assistant)
    assert assistant.orchestration is not None
    assert assistant.orchestration.level == OrchestrationLevel.standard

    assert get_default_capabilities("system") == CapabilitySetPatch()
    assert get_default_capabilities("session") == CapabilitySetPatch()
    assert get_default_capabilities("organization") == CapabilitySetPatch()


def test_default_capabilities_rejects_unknown_scope() -> None:
    with pytest.raises(CapabilityConfigurationError):
        get_default_capabilities("galaxy")


def test_config_level_then_explicit_numbers_win() -> None:
    patch = config_to_capabilities(
        CapabilitiesConfig(orchestration_level=OrchestrationLevel.full, max_concurrent_subassistants=3)
    )
    assert patch.orchestration is not None
    assert patch.orchestration.level == OrchestrationLevel.full
    assert patch.orchestration.max_concurrent_subassistants == 3
    assert patch.orchestration.max_subassistant_depth == 5
    assert patch.orchestration.can_coordinate_swarms is True


def test_config_numbers_without_level_start_from_standard() -> None:
    patch = config_to_capabilities(CapabilitiesConfig(max_subassistant_depth=2))
    assert patch.orchestration is not None
    assert patch.orchestration.level == OrchestrationLevel.standard
    assert patch.orchestration.max_subassistant_depth == 2
    assert patch.orchestration.max_concurrent_subassistants == 5


def test_config_without_orchestration_or_tools_leaves_them_unset() -> None:
    patch = config_to_capabilities(CapabilitiesConfig())
    assert patch.enabled is True
    assert patch.orchestration is None
    assert patch.tools is None


@pytest.mark.parametrize(
    ("policy", "expected"),
    [
        (ToolAccessPolicy.allow_list, {"file:read": True, "file:list": True}),
        (ToolAccessPolicy.deny_list, {"bash:*": False}),
        (ToolAccessPolicy.allow_all, {}),
        (ToolAccessPolicy.require_approval, {}),
    ],
)
def test_config_tool_lists_follow_policy(policy: ToolAccessPolicy, expected: dict) -> None:
    cfg = CapabilitiesConfig(
        tool_policy=policy,
        allowed_tools=["file:read", "file:list"],
        denied_tools=["bash:*"],
    )
    patch = config_to_capabilities(cfg)
    assert patch.tools is not None
    assert patch.tools.policy == policy
    assert patch.tools.capabilities == expected


def test_config_accepts_camel_case_mapping() -> None:
    patch = config_to_capabilities(
        {"enabled": False, "orchestrationLevel": "limited", "toolPolicy": "allow_list", "allowedTools": ["file:read"]}
    )
    assert patch.enabled is False
    assert patch.orchestration is not None
    assert patch.orchestration.level == OrchestrationLevel.limited
    assert patch.tools is not None
    assert patch.tools.capabilities == {"file:read": True}


def test_config_carries_allowed_delegates() -> None:
    patch = config_to_capabilities({"allowedDelegates": ["worker-*"]})
    assert patch.orchestration is not None
    assert patch.orchestration.allowed_delegates == ["worker-*"]
    assert patch.orchestration.level is None


@pytest.mark.parametrize(
    "config",
    [
        {"orchestrationLevel": "galactic"},
        {"toolPolicy": "sometimes"},
        {"maxSubassistantDepth": -1},
        {"unknownField": True},
    ],
)
def test_config_rejects_malformed_values(config: dict) -> None:
    with pytest.raises(CapabilityConfigurationError):
        config_to_capabilities(config)


def test_default_set_rejects_attribute_assignment() -> None:
    with pytest.raises(ValidationError):
        DEFAULT_CAPABILITY_SET.orchestration.can_coordinate_swarms = True  # type: ignore[misc]
    with pytest.raises(ValidationError):
        DEFAULT_CAPABILITY_SET.enabled = False  # type: ignore[misc]

    assert DEFAULT_CAPABILITY_SET.orchestration.can_coordinate_swarms is False


def test_level_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        ORCHESTRATION_DEFAULTS[OrchestrationLevel.standard] = ORCHESTRATION_DEFAULTS[  # type: ignore[index]
            OrchestrationLevel.coordinator
        ]
    with pytest.raises(ValidationError):
        ORCHESTRATION_DEFAULTS[OrchestrationLevel.standard].max_subassistant_depth = 99  # type: ignore[misc]

    assert ORCHESTRATION_DEFAULTS[OrchestrationLevel.standard].max_subassistant_depth == 3


def test_baseline_copies_are_independent() -> None:
    first = baseline_capability_set()
    first.tools.capabilities["bash"] = False

    assert baseline_capability_set().tools.capabilities == {}
    assert DEFAULT_CAPABILITY_SET.tools.capabilities == {}
