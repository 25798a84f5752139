from __future__ import annotations

import dataclasses

import pytest
from pydantic import ValidationError

from agent_capabilities.capabilities.defaults import DEFAULT_CAPABILITY_SET
from agent_capabilities.capabilities.enforcer import (
    CapabilityCheckContext,
    CapabilityEnforcer,
    EnforcementResult,
    coerce_context,
    find_matching_rule,
    match_pattern,
)
from agent_capabilities.capabilities.errors import CapabilityConfigurationError
from agent_capabilities.capabilities.models import (
    ApprovalLevel,
    CapabilitiesConfig,
    OrchestrationLevel,
    ToolAccessPolicy,
)


def _enforcer(**kwargs) -> CapabilityEnforcer:
    return CapabilityEnforcer(CapabilitiesConfig(enabled=True, **kwargs))


class TestEnablement:
    def test_no_config_starts_disabled(self) -> None:
        assert CapabilityEnforcer().is_enabled() is False

    def test_config_enabled_flag_is_adopted(self) -> None:
        assert _enforcer().is_enabled() is True
        assert CapabilityEnforcer(CapabilitiesConfig(enabled=False)).is_enabled() is False

    def test_set_enabled_toggles_without_touching_config(self) -> None:
        enforcer = _enforcer(orchestration_level=OrchestrationLevel.none)
        enforcer.set_enabled(False)
        assert enforcer.is_enabled() is False
        assert enforcer.can_spawn_subassistant(CapabilityCheckContext()).allowed is True

        enforcer.set_enabled(True)
        assert enforcer.get_config().orchestration_level == OrchestrationLevel.none
        assert enforcer.can_spawn_subassistant(CapabilityCheckContext()).allowed is False

    def test_disabled_enforcer_allows_every_guard(self) -> None:
        enforcer = CapabilityEnforcer(
            CapabilitiesConfig(
                enabled=False,
                orchestration_level=OrchestrationLevel.none,
                tool_policy=ToolAccessPolicy.allow_list,
                allowed_tools=[],
            )
        )
        results = [
            enforcer.can_spawn_subassistant(CapabilityCheckContext(depth=99, active_subassistants=99)),
            enforcer.can_use_tool("bash", CapabilityCheckContext()),
            enforcer.can_delegate("other", CapabilityCheckContext()),
            enforcer.can_coordinate_swarm(CapabilityCheckContext()),
        ]
        for result in results:
            assert result.allowed is True
            assert "disabled" in result.reason
            assert result.warnings == []
            assert result.requires_approval is False


class TestConfiguration:
    def test_mapping_config_is_validated(self) -> None:
        enforcer = CapabilityEnforcer({"enabled": True, "orchestrationLevel": "limited"})
        assert enforcer.get_config().orchestration_level == OrchestrationLevel.limited

    @pytest.mark.parametrize(
        "config",
        [
            {"enabled": True, "toolPolicy": "sometimes"},
            {"enabled": True, "orchestrationLevel": "overlord"},
        ],
    )
    def test_malformed_config_raises_at_construction(self, config: dict) -> None:
        with pytest.raises(CapabilityConfigurationError):
            CapabilityEnforcer(config)

    def test_update_config_replaces_policy_and_enabled_flag(self) -> None:
        enforcer = _enforcer()
        enforcer.update_config(CapabilitiesConfig(enabled=False, orchestration_level=OrchestrationLevel.none))
        assert enforcer.is_enabled() is False
        assert enforcer.get_config().orchestration_level == OrchestrationLevel.none

    def test_invalid_update_keeps_previous_config(self) -> None:
        enforcer = _enforcer(orchestration_level=OrchestrationLevel.limited)
        with pytest.raises(CapabilityConfigurationError):
            enforcer.update_config({"orchestrationLevel": "overlord"})
        assert enforcer.get_config().orchestration_level == OrchestrationLevel.limited
        assert enforcer.is_enabled() is True

    def test_effective_capabilities_never_exceed_standard_baseline(self) -> None:
        enforcer = _enforcer(orchestration_level=OrchestrationLevel.coordinator, max_concurrent_subassistants=50)
        orch = enforcer.get_effective_capabilities().orchestration
        assert orch.level == OrchestrationLevel.coordinator
        assert orch.max_concurrent_subassistants == 5
        assert orch.max_subassistant_depth == 3
        assert orch.can_coordinate_swarms is False

    def test_effective_capabilities_follow_config_changes(self) -> None:
        enforcer = _enforcer(max_subassistant_depth=2)
        assert enforcer.get_effective_capabilities().orchestration.max_subassistant_depth == 2
        enforcer.update_config(CapabilitiesConfig(enabled=True, max_subassistant_depth=1))
        assert enforcer.get_effective_capabilities().orchestration.max_subassistant_depth == 1


class TestSpawn:
    def test_spawn_allowed_with_defaults(self) -> None:
        result = _enforcer().can_spawn_subassistant(CapabilityCheckContext(depth=0, active_subassistants=0))
        assert result.allowed is True
        assert result.warnings == []

    def test_spawn_without_context_uses_root_depth(self) -> None:
        assert _enforcer().can_spawn_subassistant().allowed is True

    def test_spawn_denied_when_level_forbids_it(self) -> None:
        result = _enforcer(orchestration_level=OrchestrationLevel.none).can_spawn_subassistant(
            CapabilityCheckContext()
        )
        assert result.allowed is False
        assert "not allowed" in result.reason

    def test_spawn_denied_at_depth_ceiling(self) -> None:
        result = _enforcer(max_subassistant_depth=1).can_spawn_subassistant(CapabilityCheckContext(depth=1))
        assert result.allowed is False
        assert "depth" in result.reason

    def test_spawn_denied_at_concurrency_ceiling(self) -> None:
        result = _enforcer(max_concurrent_subassistants=2).can_spawn_subassistant(
            CapabilityCheckContext(depth=0, active_subassistants=2)
        )
        assert result.allowed is False
        assert "concurrent" in result.reason

    def test_spawn_warns_one_below_concurrency_ceiling(self) -> None:
        result = _enforcer(max_concurrent_subassistants=2).can_spawn_subassistant(
            CapabilityCheckContext(depth=0, active_subassistants=1)
        )
        assert result.allowed is True
        assert len(result.warnings) >= 1
        assert any("concurrent" in w for w in result.warnings)

    def test_spawn_warns_one_below_depth_ceiling(self) -> None:
        result = _enforcer(max_subassistant_depth=3).can_spawn_subassistant(CapabilityCheckContext(depth=2))
        assert result.allowed is True
        assert any("depth" in w for w in result.warnings)

    def test_unknown_active_count_skips_concurrency_check(self) -> None:
        result = _enforcer(max_concurrent_subassistants=0).can_spawn_subassistant(CapabilityCheckContext(depth=0))
        assert result.allowed is True


class TestTools:
    def test_allow_all_allows_anything(self) -> None:
        result = _enforcer(tool_policy=ToolAccessPolicy.allow_all).can_use_tool("bash:execute")
        assert result.allowed is True
        assert result.requires_approval is False

    def test_no_tool_policy_defaults_to_allow_all(self) -> None:
        assert _enforcer().can_use_tool("anything").allowed is True

    def test_allow_list_denies_unlisted_tool(self) -> None:
        enforcer = _enforcer(tool_policy=ToolAccessPolicy.allow_list, allowed_tools=["file:read"])
        result = enforcer.can_use_tool("bash", CapabilityCheckContext())
        assert result.allowed is False
        assert "not in the allowed list" in result.reason

    def test_allow_list_allows_listed_and_wildcard_tools(self) -> None:
        enforcer = _enforcer(tool_policy=ToolAccessPolicy.allow_list, allowed_tools=["file:read", "web:*"])
        assert enforcer.can_use_tool("file:read").allowed is True
        assert enforcer.can_use_tool("web:fetch").allowed is True
        assert enforcer.can_use_tool("file:write").allowed is False

    def test_deny_list_denies_matching_tool(self) -> None:
        enforcer = _enforcer(tool_policy=ToolAccessPolicy.deny_list, denied_tools=["bash:*"])
        result = enforcer.can_use_tool("bash:execute")
        assert result.allowed is False
        assert "deny list" in result.reason
        assert enforcer.can_use_tool("file:read").allowed is True

    def test_require_approval_allows_but_flags(self) -> None:
        result = _enforcer(tool_policy=ToolAccessPolicy.require_approval).can_use_tool("file:read")
        assert result.allowed is True
        assert result.requires_approval is True
        assert result.approval_level == ApprovalLevel.require


class TestDelegationAndSwarms:
    @pytest.mark.parametrize(
        ("level", "allowed"),
        [
            (OrchestrationLevel.none, False),
            (OrchestrationLevel.limited, True),
            (OrchestrationLevel.standard, True),
            (OrchestrationLevel.full, True),
            (OrchestrationLevel.coordinator, True),
        ],
    )
    def test_delegation_refused_only_at_level_none(self, level: OrchestrationLevel, allowed: bool) -> None:
        result = _enforcer(orchestration_level=level).can_delegate("assistant-2", CapabilityCheckContext())
        assert result.allowed is allowed

    def test_delegation_respects_allowed_delegates(self) -> None:
        enforcer = _enforcer(allowed_delegates=["worker-*", "reviewer"])
        assert enforcer.can_delegate("worker-7").allowed is True
        assert enforcer.can_delegate("reviewer").allowed is True
        denied = enforcer.can_delegate("planner")
        assert denied.allowed is False
        assert "planner" in denied.reason

    @pytest.mark.parametrize("level", list(OrchestrationLevel))
    def test_swarm_coordination_never_exceeds_baseline(self, level: OrchestrationLevel) -> None:
        result = _enforcer(orchestration_level=level).can_coordinate_swarm(CapabilityCheckContext())
        assert result.allowed is False
        assert "not allowed" in result.reason

    def test_swarm_coordination_without_context(self) -> None:
        assert _enforcer(orchestration_level=OrchestrationLevel.full).can_coordinate_swarm().allowed is False


class TestPatternMatching:
    @pytest.mark.parametrize(
        ("name", "pattern", "matches"),
        [
            ("bash:execute", "bash:execute", True),
            ("bash:execute", "bash:*", True),
            ("bash:execute", "*", True),
            ("bash_execute", "bash", True),
            ("bash:execute", "bash", True),
            ("bashful", "bash", False),
            ("file:read", "bash:*", False),
            ("bash", "file:read", False),
        ],
    )
    def test_match_pattern(self, name: str, pattern: str, matches: bool) -> None:
        assert (match_pattern(name, pattern) >= 0) is matches

    def test_exact_rule_beats_wildcard(self) -> None:
        rules = {"bash:*": False, "bash:execute": True}
        assert find_matching_rule("bash:execute", rules) == ("bash:execute", True)
        assert find_matching_rule("bash:run", rules) == ("bash:*", False)

    def test_longer_prefix_is_more_specific(self) -> None:
        rules = {"*": True, "file:*": False, "file:read*": True}
        assert find_matching_rule("file:read_all", rules) == ("file:read*", True)
        assert find_matching_rule("file:write", rules) == ("file:*", False)
        assert find_matching_rule("web:fetch", rules) == ("*", True)

    def test_no_match_returns_none(self) -> None:
        assert find_matching_rule("web:fetch", {"file:read": True}) is None


def test_enforcement_result_is_immutable() -> None:
    result = EnforcementResult(allowed=True, reason="ok")
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.allowed = False  # type: ignore[misc]


class TestMappingContext:
    def test_depth_from_mapping_is_enforced(self) -> None:
        result = _enforcer(max_subassistant_depth=1).can_spawn_subassistant({"depth": 1})
        assert result.allowed is False
        assert "depth" in result.reason

    def test_camel_case_keys_are_accepted(self) -> None:
        result = _enforcer(max_concurrent_subassistants=2).can_spawn_subassistant({"activeSubassistants": 2})
        assert result.allowed is False
        assert "concurrent" in result.reason

    def test_other_guards_accept_mappings(self) -> None:
        enforcer = _enforcer()
        assert enforcer.can_use_tool("file:read", {"assistantId": "a"}).allowed is True
        assert enforcer.can_delegate("worker", {"session_id": "s"}).allowed is True
        assert enforcer.can_coordinate_swarm({"depth": 0}).allowed is False

    def test_coerce_context_ignores_unknown_keys(self) -> None:
        ctx = coerce_context({"depth": 2, "parentId": "root", "colour": "blue"})
        assert ctx == CapabilityCheckContext(depth=2, parent_id="root")

    def test_coerce_context_passes_instances_through(self) -> None:
        ctx = CapabilityCheckContext(depth=3)
        assert coerce_context(ctx) is ctx
        assert coerce_context(None) == CapabilityCheckContext()


def test_unknown_tool_policy_is_denied(monkeypatch: pytest.MonkeyPatch) -> None:
    enforcer = _enforcer()
    resolved = enforcer.get_effective_capabilities()
    broken = resolved.model_copy(update={"tools": resolved.tools.model_copy(update={"policy": "sometimes"})})
    monkeypatch.setattr(enforcer, "get_effective_capabilities", lambda: broken)

    result = enforcer.can_use_tool("file:read")

    assert result.allowed is False
    assert "Unknown tool access policy" in result.reason


def test_default_set_cannot_be_widened_at_runtime() -> None:
    with pytest.raises(ValidationError):
        DEFAULT_CAPABILITY_SET.orchestration.can_coordinate_swarms = True  # type: ignore[misc]

    assert DEFAULT_CAPABILITY_SET.orchestration.can_coordinate_swarms is False
    assert _enforcer(orchestration_level=OrchestrationLevel.full).can_coordinate_swarm().allowed is False
