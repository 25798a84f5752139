from __future__ import annotations

"""Runtime capability guard.

``CapabilityEnforcer`` is the synchronous decision oracle the agent loop asks
before spawning a sub-assistant, calling a tool, delegating, or coordinating a
swarm.

Its effective capabilities are recomputed on every decision by resolving the
host configuration as the only (assistant-scope) entry of a chain. Because the
resolver starts from the ``standard`` baseline and merges booleans with AND and
ceilings with ``min``, configuration can narrow the baseline but never widen
it: ``orchestration_level="full"`` does not grant swarm coordination.

Guard methods never raise. A denial is a normal ``EnforcementResult`` with
``allowed=False`` and a human-readable ``reason``.
"""

import logging
import threading
from dataclasses import dataclass, field, fields
from typing import Any, List, Mapping, Optional, Union

from pydantic.alias_generators import to_camel

from .defaults import coerce_config, config_to_capabilities
from .models import (
    ApprovalLevel,
    CapabilitiesConfig,
    CapabilityScope,
    OrchestrationLevel,
    ResolvedCapabilitySet,
    ToolAccessPolicy,
)
from .resolver import create_capability_chain, resolve_capability_chain

logger = logging.getLogger(__name__)

_DISABLED_REASON = "Capability enforcement disabled"

# Specificity scores for tool rule matching; higher wins.
_EXACT_MATCH = 1000
_NO_MATCH = -1


@dataclass(frozen=True)
class CapabilityCheckContext:
    """
    Caller-supplied facts for a capability check.

    Attributes:
        depth: Depth of the caller in the sub-assistant hierarchy (0 = root).
        active_subassistants: Sub-assistants currently running under the caller, if known.
        session_id: Session id, informational.
        assistant_id: Id of the assistant asking.
        parent_id: Parent assistant id for sub-assistants.
        tokens_used: Tokens consumed so far, informational.
    """

    depth: int = 0
    active_subassistants: Optional[int] = None
    session_id: Optional[str] = None
    assistant_id: Optional[str] = None
    parent_id: Optional[str] = None
    tokens_used: Optional[int] = None


ContextLike = Union[CapabilityCheckContext, Mapping[str, Any]]


def coerce_context(context: Optional[ContextLike]) -> CapabilityCheckContext:
    """
    Build a ``CapabilityCheckContext`` from ``None``, a context, or a mapping.

    Mapping keys may be snake_case or camelCase; unknown keys are ignored.
    """
    if context is None:
        return CapabilityCheckContext()
    if isinstance(context, CapabilityCheckContext):
        return context
    values = {}
    for f in fields(CapabilityCheckContext):
        if f.name in context:
            values[f.name] = context[f.name]
        elif to_camel(f.name) in context:
            values[f.name] = context[to_camel(f.name)]
    return CapabilityCheckContext(**values)


@dataclass(frozen=True)
class EnforcementResult:
    """
    Verdict of a single guard call.

    Attributes:
        allowed: Whether the action may proceed.
        reason: Human-readable explanation.
        warnings: Non-blocking notices to surface (e.g. approaching a limit).
        requires_approval: The action may proceed only after external approval.
        approval_level: Approval level when approval is required.
    """

    allowed: bool
    reason: str
    warnings: List[str] = field(default_factory=list)
    requires_approval: bool = False
    approval_level: Optional[ApprovalLevel] = None


def match_pattern(name: str, pattern: str) -> int:
    """
    Score how specifically ``pattern`` matches ``name``.

    - exact match: highest score;
    - ``prefix*``: the prefix length (longer prefix = more specific);
    - bare category without ``*`` or ``:`` (``bash``): matches ``bash_x`` and
      ``bash:x`` with the category length.

    Returns:
        The specificity score, or -1 when the pattern does not match.
    """
    if pattern == name:
        return _EXACT_MATCH
    if pattern.endswith("*"):
        prefix = pattern[:-1]
        if name.startswith(prefix):
            return len(prefix)
    if "*" not in pattern and ":" not in pattern:
        if name.startswith(pattern + "_") or name.startswith(pattern + ":"):
            return len(pattern)
    return _NO_MATCH


def find_matching_rule(name: str, rules: Mapping[str, bool]) -> Optional[tuple[str, bool]]:
    """Return the most specific ``(pattern, allowed)`` rule matching ``name``, if any."""
    best: Optional[tuple[str, bool]] = None
    best_score = _NO_MATCH
    for pattern, allowed in rules.items():
        score = match_pattern(name, pattern)
        if score > best_score:
            best = (pattern, allowed)
            best_score = score
    return best


def _delegate_matches(target_id: str, pattern: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return target_id.startswith(pattern[:-1])
    return target_id == pattern


def _allow(reason: str, warnings: Optional[List[str]] = None) -> EnforcementResult:
    logger.debug(f"Capability allowed: {reason}")
    return EnforcementResult(allowed=True, reason=reason, warnings=list(warnings or []))


def _deny(reason: str) -> EnforcementResult:
    logger.info(f"Capability denied: {reason}")
    return EnforcementResult(allowed=False, reason=reason)


class CapabilityEnforcer:
    """
    Turn a simplified host configuration into allow/deny/warn decisions.

    The ``enabled`` flag is independent of the rest of the configuration so
    enforcement can be toggled without rebuilding policy. Without a config the
    enforcer starts disabled.
    """

    def __init__(self, config: Optional[Union[CapabilitiesConfig, Mapping[str, Any]]] = None) -> None:
        """
        Args:
            config: Host configuration, as a model or a mapping.

        Raises:
            CapabilityConfigurationError: If the configuration does not validate.
        """
        self._lock = threading.Lock()
        if config is None:
            self._config = CapabilitiesConfig(enabled=False)
        else:
            self._config = coerce_config(config)
        self._enabled = self._config.enabled

    def is_enabled(self) -> bool:
        """Return whether enforcement is active."""
        with self._lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Turn enforcement on or off without touching the policy."""
        with self._lock:
            self._enabled = enabled
        logger.info(f"Capability enforcement {'enabled' if enabled else 'disabled'}")

    def update_config(self, config: Union[CapabilitiesConfig, Mapping[str, Any]]) -> None:
        """
        Replace the configuration and adopt its ``enabled`` value.

        Raises:
            CapabilityConfigurationError: If the configuration does not validate;
                the previous configuration is kept in that case.
        """
        cfg = coerce_config(config)
        with self._lock:
            self._config = cfg
            self._enabled = cfg.enabled

    def get_config(self) -> CapabilitiesConfig:
        """Return the current configuration."""
        return self._config

    def get_effective_capabilities(self) -> ResolvedCapabilitySet:
        """Resolve the configuration against the standard baseline. Computed fresh on every call."""
        chain = create_capability_chain(CapabilityScope.assistant, config_to_capabilities(self._config))
        return resolve_capability_chain(chain)

    def can_spawn_subassistant(self, context: Optional[ContextLike] = None) -> EnforcementResult:
        """
        Check whether a sub-assistant may be spawned.

        Denies when spawning is disabled, when ``depth`` has reached the depth
        ceiling, or when ``active_subassistants`` has reached the concurrency
        ceiling. Allows with warnings one step below either ceiling.
        """
        if not self.is_enabled():
            return _allow(_DISABLED_REASON)
        ctx = coerce_context(context)
        orch = self.get_effective_capabilities().orchestration

        if not orch.can_spawn_subassistants:
            return _deny(f"Subassistant spawning not allowed (orchestration level: {orch.level.value})")

        if ctx.depth >= orch.max_subassistant_depth:
            return _deny(f"Maximum subassistant depth ({orch.max_subassistant_depth}) reached")

        active = ctx.active_subassistants
        if active is not None and active >= orch.max_concurrent_subassistants:
            return _deny(f"Maximum concurrent subassistants ({orch.max_concurrent_subassistants}) reached")

        warnings: List[str] = []
        if active is not None and active == orch.max_concurrent_subassistants - 1:
            warnings.append(
                f"Approaching concurrent subassistant limit ({active + 1}/{orch.max_concurrent_subassistants})"
            )
        if ctx.depth == orch.max_subassistant_depth - 1:
            warnings.append(f"Approaching maximum depth ({ctx.depth + 1}/{orch.max_subassistant_depth})")

        return _allow("Subassistant spawning allowed", warnings)

    def can_use_tool(self, tool_name: str, context: Optional[ContextLike] = None) -> EnforcementResult:
        """
        Check whether ``tool_name`` may be invoked under the effective tool policy.

        ``require_approval`` allows the call but flags it; the caller must gate
        execution on external approval.
        """
        if not self.is_enabled():
            return _allow(_DISABLED_REASON)
        tools = self.get_effective_capabilities().tools
        rule = find_matching_rule(tool_name, tools.capabilities)

        if tools.policy == ToolAccessPolicy.allow_all:
            return _allow("Tool allowed")
        if tools.policy == ToolAccessPolicy.allow_list:
            if rule is None or not rule[1]:
                return _deny(f"Tool '{tool_name}' is not in the allowed list")
            return _allow("Tool allowed")
        if tools.policy == ToolAccessPolicy.deny_list:
            if rule is not None and not rule[1]:
                return _deny(f"Tool '{tool_name}' is in the deny list")
            return _allow("Tool allowed")
        if tools.policy == ToolAccessPolicy.require_approval:
            return EnforcementResult(
                allowed=True,
                reason=f"Tool '{tool_name}' requires approval",
                requires_approval=True,
                approval_level=ApprovalLevel.require,
            )
        return _deny(f"Unknown tool access policy: {tools.policy!r}")

    def can_delegate(
        self, target_assistant_id: str, context: Optional[ContextLike] = None
    ) -> EnforcementResult:
        """
        Check whether work may be delegated to ``target_assistant_id``.

        Delegation is refused only at orchestration level ``none``, or when
        ``allowed_delegates`` is configured and the target matches none of its
        patterns.
        """
        if not self.is_enabled():
            return _allow(_DISABLED_REASON)
        orch = self.get_effective_capabilities().orchestration

        if orch.level == OrchestrationLevel.none:
            return _deny("Delegation not allowed for this assistant (orchestration level: none)")

        if orch.allowed_delegates:
            if not any(_delegate_matches(target_assistant_id, p) for p in orch.allowed_delegates):
                return _deny(f"Delegation to '{target_assistant_id}' not in allowed delegates list")

        return _allow("Delegation allowed")

    def can_coordinate_swarm(self, context: Optional[ContextLike] = None) -> EnforcementResult:
        """Check whether the assistant may coordinate a swarm."""
        if not self.is_enabled():
            return _allow(_DISABLED_REASON)
        orch = self.get_effective_capabilities().orchestration

        if not orch.can_coordinate_swarms:
            return _deny(f"Swarm coordination not allowed (orchestration level: {orch.level.value})")
        return _allow("Swarm coordination allowed")
