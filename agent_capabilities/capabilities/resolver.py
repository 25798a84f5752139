from __future__ import annotations

"""Capability chain resolution.

``resolve_capability_chain`` folds the per-scope patches of a chain into one
total ``ResolvedCapabilitySet``. Scopes are visited from the most local
(``assistant``) to the most authoritative (``system``) and each field is merged
with one of two rules:

- **override**: the scope's value replaces the accumulated one, so the
  highest-precedence scope that speaks wins. Used for ``orchestration.level``,
  ``tools.policy``, ``skills.policy``, ``approval.default_level`` and a few
  descriptive fields.
- **restrictive**: numeric ceilings take the minimum and booleans take the
  logical AND, independent of visiting order. A single ``False`` or a single low
  ceiling from any scope sticks.

Pattern maps (tool, skill and model rules) are upserted by pattern key. The
resolver never interprets patterns; specificity is resolved at decision time by
the enforcer.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .defaults import baseline_capability_set
from .errors import CapabilityConfigurationError
from .models import (
    SCOPE_PRECEDENCE,
    ApprovalPatch,
    ApprovalPolicy,
    AssistantCapabilitySet,
    BudgetCapabilities,
    BudgetLimits,
    BudgetLimitsPatch,
    BudgetPatch,
    CapabilityChain,
    CapabilityScope,
    CapabilitySetPatch,
    CommunicationCapabilities,
    CommunicationPatch,
    MemoryCapabilities,
    MemoryPatch,
    ModelCapabilities,
    ModelPatch,
    OrchestrationCapabilities,
    OrchestrationPatch,
    PatchLike,
    ResolvedCapabilitySet,
    SkillCapabilities,
    SkillPatch,
    ToolCapabilities,
    ToolPatch,
)

if TYPE_CHECKING:
    from .storage import CapabilityRepository

logger = logging.getLogger(__name__)

_WILDCARD_SCOPE = "*"


def _min_limit(current: Optional[int], incoming: Optional[int]) -> Optional[int]:
    """Restrictive merge for optional ceilings where ``None`` means unlimited."""
    if incoming is None:
        return current
    if current is None:
        return incoming
    return min(current, incoming)


def _and(current: bool, incoming: Optional[bool]) -> bool:
    if incoming is None:
        return current
    return current and incoming


def merge_patterns(base: Mapping[str, bool], incoming: Optional[Mapping[str, bool]]) -> Dict[str, bool]:
    """
    Upsert ``incoming`` rules into ``base`` by pattern key.

    Existing patterns keep their original position; new patterns are appended.
    """
    merged = dict(base)
    if incoming:
        for pattern, allowed in incoming.items():
            merged[pattern] = allowed
    return merged


def merge_memory_scopes(current: List[str], incoming: Optional[List[str]]) -> List[str]:
    """
    Intersect memory scope lists, treating ``"*"`` as every scope.

    An explicit empty list narrows to no scopes at all.
    """
    if incoming is None:
        return list(current)
    if _WILDCARD_SCOPE in incoming:
        return list(current)
    if _WILDCARD_SCOPE in current:
        return list(dict.fromkeys(incoming))
    return [scope for scope in current if scope in incoming]


def merge_orchestration(
    base: OrchestrationCapabilities, patch: OrchestrationPatch
) -> tuple[OrchestrationCapabilities, bool]:
    """
    Merge an orchestration patch into ``base``.

    Returns:
        The merged capabilities and whether an override field was written.
    """
    overridden = patch.level is not None or patch.allowed_delegates is not None
    merged = OrchestrationCapabilities(
        level=patch.level if patch.level is not None else base.level,
        can_spawn_subassistants=_and(base.can_spawn_subassistants, patch.can_spawn_subassistants),
        max_concurrent_subassistants=_min_limit(base.max_concurrent_subassistants, patch.max_concurrent_subassistants),
        max_subassistant_depth=_min_limit(base.max_subassistant_depth, patch.max_subassistant_depth),
        can_coordinate_swarms=_and(base.can_coordinate_swarms, patch.can_coordinate_swarms),
        max_swarm_size=_min_limit(base.max_swarm_size, patch.max_swarm_size),
        can_delegate=_and(base.can_delegate, patch.can_delegate),
        allowed_delegates=(
            list(patch.allowed_delegates) if patch.allowed_delegates is not None else base.allowed_delegates
        ),
    )
    return merged, overridden


def merge_tools(base: ToolCapabilities, patch: ToolPatch) -> tuple[ToolCapabilities, bool]:
    merged = ToolCapabilities(
        policy=patch.policy if patch.policy is not None else base.policy,
        capabilities=merge_patterns(base.capabilities, patch.capabilities),
    )
    return merged, patch.policy is not None


def merge_skills(base: SkillCapabilities, patch: SkillPatch) -> tuple[SkillCapabilities, bool]:
    merged = SkillCapabilities(
        policy=patch.policy if patch.policy is not None else base.policy,
        capabilities=merge_patterns(base.capabilities, patch.capabilities),
    )
    return merged, patch.policy is not None


def merge_models(base: ModelCapabilities, patch: ModelPatch) -> tuple[ModelCapabilities, bool]:
    merged = ModelCapabilities(
        allowed=merge_patterns(base.allowed, patch.allowed),
        default_model=patch.default_model if patch.default_model is not None else base.default_model,
    )
    return merged, patch.default_model is not None


def _concat(current: List[str], incoming: Optional[List[str]]) -> List[str]:
    """Append unseen entries of ``incoming`` to ``current``, keeping order."""
    return list(dict.fromkeys([*current, *(incoming or [])]))


def merge_approval(base: ApprovalPolicy, patch: ApprovalPatch) -> tuple[ApprovalPolicy, bool]:
    """
    Merge an approval patch into ``base``.

    Pattern lists accumulate. An operation that any scope requires approval
    for is dropped from ``auto_approve``, whichever scope auto-approved it.
    """
    require_approval = _concat(base.require_approval, patch.require_approval)
    auto_approve = [p for p in _concat(base.auto_approve, patch.auto_approve) if p not in require_approval]
    merged = ApprovalPolicy(
        default_level=patch.default_level if patch.default_level is not None else base.default_level,
        require_approval=require_approval,
        warn_on=_concat(base.warn_on, patch.warn_on),
        auto_approve=auto_approve,
        approval_timeout=patch.approval_timeout if patch.approval_timeout is not None else base.approval_timeout,
    )
    return merged, patch.default_level is not None or patch.approval_timeout is not None


def merge_communication(
    base: CommunicationCapabilities, patch: CommunicationPatch
) -> tuple[CommunicationCapabilities, bool]:
    merged = CommunicationCapabilities(
        can_send_messages=_and(base.can_send_messages, patch.can_send_messages),
        can_receive_messages=_and(base.can_receive_messages, patch.can_receive_messages),
        can_broadcast=_and(base.can_broadcast, patch.can_broadcast),
        allowed_recipients=(
            list(patch.allowed_recipients) if patch.allowed_recipients is not None else base.allowed_recipients
        ),
        message_rate_limit=_min_limit(base.message_rate_limit, patch.message_rate_limit),
    )
    return merged, patch.allowed_recipients is not None


def merge_memory(base: MemoryCapabilities, patch: MemoryPatch) -> tuple[MemoryCapabilities, bool]:
    merged = MemoryCapabilities(
        can_access_global_memory=_and(base.can_access_global_memory, patch.can_access_global_memory),
        can_write_memory=_and(base.can_write_memory, patch.can_write_memory),
        allowed_memory_scopes=merge_memory_scopes(base.allowed_memory_scopes, patch.allowed_memory_scopes),
        memory_quota=_min_limit(base.memory_quota, patch.memory_quota),
    )
    return merged, False


def _merge_limits(base: BudgetLimits, patch: Optional[BudgetLimitsPatch]) -> BudgetLimits:
    if patch is None:
        return base
    return BudgetLimits(
        max_total_tokens=_min_limit(base.max_total_tokens, patch.max_total_tokens),
        max_llm_calls=_min_limit(base.max_llm_calls, patch.max_llm_calls),
        max_tool_calls=_min_limit(base.max_tool_calls, patch.max_tool_calls),
        max_duration_ms=_min_limit(base.max_duration_ms, patch.max_duration_ms),
    )


def merge_budget(base: BudgetCapabilities, patch: BudgetPatch) -> tuple[BudgetCapabilities, bool]:
    """
    Merge a budget patch into ``base``.

    ``limits`` take the minimum per ceiling. ``max_subassistant_budget`` and
    ``shared_budget`` are override fields; an overriding sub-assistant budget
    replaces the previous one as a whole.
    """
    sub_budget = base.max_subassistant_budget
    if patch.max_subassistant_budget is not None:
        sub_budget = BudgetLimits(**patch.max_subassistant_budget.model_dump())
    merged = BudgetCapabilities(
        limits=_merge_limits(base.limits, patch.limits),
        can_override_budget=_and(base.can_override_budget, patch.can_override_budget),
        max_subassistant_budget=sub_budget,
        shared_budget=patch.shared_budget if patch.shared_budget is not None else base.shared_budget,
    )
    return merged, patch.shared_budget is not None or patch.max_subassistant_budget is not None


def coerce_patch(patch: PatchLike) -> CapabilitySetPatch:
    """Validate a mapping into a ``CapabilitySetPatch``; patches pass through untouched."""
    if isinstance(patch, CapabilitySetPatch):
        return patch
    try:
        return CapabilitySetPatch.model_validate(patch)
    except ValidationError as e:
        logger.error(f"Invalid capability patch: {e}")
        raise CapabilityConfigurationError(f"Invalid capability patch: {e}") from e


def apply_capability_patch(
    base: AssistantCapabilitySet,
    patch: PatchLike,
    scope: Union[CapabilityScope, str],
    sources: Optional[Dict[str, str]] = None,
) -> AssistantCapabilitySet:
    """
    Fold one scope's patch into a total capability set.

    ``base`` is not modified. When ``sources`` is given it is updated in place
    with ``category -> scope`` for every category whose override field the
    patch wrote.

    Args:
        base: The accumulated total set.
        patch: The scope's contribution.
        scope: The scope the patch belongs to.
        sources: Optional provenance mapping to update.

    Returns:
        A new total set.
    """
    p = coerce_patch(patch)
    scope_name = scope.value if isinstance(scope, CapabilityScope) else str(scope)
    updates: Dict[str, Any] = {}
    touched: List[str] = []

    if p.enabled is not None:
        updates["enabled"] = base.enabled and p.enabled

    if p.orchestration is not None:
        updates["orchestration"], overridden = merge_orchestration(base.orchestration, p.orchestration)
        if overridden:
            touched.append("orchestration")
    if p.tools is not None:
        updates["tools"], overridden = merge_tools(base.tools, p.tools)
        if overridden:
            touched.append("tools")
    if p.skills is not None:
        updates["skills"], overridden = merge_skills(base.skills, p.skills)
        if overridden:
            touched.append("skills")
    if p.models is not None:
        updates["models"], overridden = merge_models(base.models, p.models)
        if overridden:
            touched.append("models")
    if p.approval is not None:
        updates["approval"], overridden = merge_approval(base.approval, p.approval)
        if overridden:
            touched.append("approval")
    if p.communication is not None:
        updates["communication"], overridden = merge_communication(base.communication, p.communication)
        if overridden:
            touched.append("communication")
    if p.memory is not None:
        updates["memory"], _ = merge_memory(base.memory, p.memory)
    if p.budget is not None:
        updates["budget"], overridden = merge_budget(base.budget, p.budget)
        if overridden:
            touched.append("budget")
    if p.metadata:
        updates["metadata"] = {**base.metadata, **p.metadata}
        touched.append("metadata")

    if sources is not None:
        for category in touched:
            sources[category] = scope_name
    return base.model_copy(update=updates).model_copy(deep=True)


def _ordered_scopes(chain: Mapping[str, Any]) -> Iterable[CapabilityScope]:
    known = {scope.value for scope in SCOPE_PRECEDENCE}
    for key in chain:
        name = key.value if isinstance(key, CapabilityScope) else key
        if name not in known:
            logger.warning(f"Ignoring unknown capability scope in chain: {name!r}")
    for scope in SCOPE_PRECEDENCE:
        if scope in chain or scope.value in chain:
            yield scope


def _lookup(chain: Mapping[Any, PatchLike], scope: CapabilityScope) -> Optional[PatchLike]:
    if scope in chain:
        return chain[scope]
    return chain.get(scope.value)


def resolve_capability_chain(chain: Mapping[Any, PatchLike]) -> ResolvedCapabilitySet:
    """
    Resolve a chain of per-scope patches into one total capability set.

    Args:
        chain: Scope name (or ``CapabilityScope``) -> patch or patch mapping.
            Scopes outside ``SCOPE_PRECEDENCE`` are skipped.

    Returns:
        A fully populated ``ResolvedCapabilitySet`` stamped with ``resolved_at``.

    Raises:
        CapabilityConfigurationError: If a chain entry does not validate.
    """
    current = baseline_capability_set().model_copy(update={"enabled": True})
    sources: Dict[str, str] = {}

    for scope in _ordered_scopes(chain):
        patch = _lookup(chain, scope)
        if patch is None:
            continue
        current = apply_capability_patch(current, patch, scope, sources)

    logger.debug(f"Resolved capability chain over scopes {[str(k) for k in chain]}: sources={sources}")
    return ResolvedCapabilitySet(**current.model_dump(), sources=sources)


def create_capability_chain(scope: Union[CapabilityScope, str], capabilities: PatchLike) -> CapabilityChain:
    """Build a chain holding a single scope's patch."""
    key = scope.value if isinstance(scope, CapabilityScope) else str(scope)
    return {key: coerce_patch(capabilities)}


def extend_capability_chain(
    chain: Mapping[Any, PatchLike],
    scope: Union[CapabilityScope, str],
    capabilities: PatchLike,
) -> CapabilityChain:
    """
    Return a new chain with ``scope`` added or replaced.

    The argument chain is left untouched; callers may still hold references
    to it.
    """
    key = scope.value if isinstance(scope, CapabilityScope) else str(scope)
    extended: CapabilityChain = {}
    for existing_key, patch in chain.items():
        name = existing_key.value if isinstance(existing_key, CapabilityScope) else str(existing_key)
        extended[name] = coerce_patch(patch)
    extended[key] = coerce_patch(capabilities)
    return extended


def resolve_entity_capabilities(storage: "CapabilityRepository", entity_id: str) -> ResolvedCapabilitySet:
    """
    Resolve the stored chain of an entity and apply its ad hoc override last.

    The override is folded at ``system`` precedence after the whole chain, so
    an emergency restriction cannot be undone by any chain entry. Entities
    with nothing stored resolve to the defaults.
    """
    chain = storage.get_chain(entity_id) or {}
    resolved = resolve_capability_chain(chain)
    override = storage.get_override(entity_id)
    if override is None:
        return resolved

    sources = dict(resolved.sources)
    base = AssistantCapabilitySet(**resolved.model_dump(exclude={"sources", "resolved_at"}))
    merged = apply_capability_patch(base, override, CapabilityScope.system, sources)
    logger.debug(f"Applied capability override for entity '{entity_id}'")
    return ResolvedCapabilitySet(**merged.model_dump(), sources=sources)
