from __future__ import annotations

"""Capability schema.

Two families of models live here:

- *Total* models (``AssistantCapabilitySet`` and its categories) where every
  field always has a value.
- *Patch* models (``CapabilitySetPatch`` and its categories) where every field
  is optional. A patch is what a single scope contributes to a chain; ``None``
  means the scope has no opinion on that field.

The resolver folds patches into a total model field by field. Which merge rule
applies to which field is documented on the total model fields.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import Field

from ..schemas.base import BaseSchema, FrozenSchema, PatchSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CapabilityScope(str, Enum):
    """Origin layer of a policy override, from most local to most authoritative."""

    assistant = "assistant"
    session = "session"
    organization = "organization"
    system = "system"


# Lowest precedence first. Override fields written by a later scope win.
SCOPE_PRECEDENCE: tuple[CapabilityScope, ...] = (
    CapabilityScope.assistant,
    CapabilityScope.session,
    CapabilityScope.organization,
    CapabilityScope.system,
)


class OrchestrationLevel(str, Enum):
    """Named bundle of spawn/delegate/swarm defaults, most restrictive first."""

    none = "none"
    limited = "limited"
    standard = "standard"
    full = "full"
    coordinator = "coordinator"


class ToolAccessPolicy(str, Enum):
    """How tool (or skill) rules are interpreted."""

    allow_all = "allow_all"
    allow_list = "allow_list"
    deny_list = "deny_list"
    require_approval = "require_approval"


class ApprovalLevel(str, Enum):
    """Approval requirement attached to an operation."""

    none = "none"
    warn = "warn"
    require = "require"
    require_explicit = "require_explicit"


# =====================================================================
# Total models
# =====================================================================


class OrchestrationCapabilities(FrozenSchema):
    """
    Spawn, delegation and swarm rights.

    ``level`` and ``allowed_delegates`` are override fields. Booleans merge with
    AND and integer ceilings merge with ``min``.
    """

    level: OrchestrationLevel
    can_spawn_subassistants: bool
    max_concurrent_subassistants: int = Field(ge=0)
    max_subassistant_depth: int = Field(ge=0)
    can_coordinate_swarms: bool
    max_swarm_size: int = Field(ge=0)
    can_delegate: bool
    allowed_delegates: Optional[List[str]] = Field(
        default=None,
        description="If set, delegation targets must match one of these id patterns ('*', 'prefix*', exact).",
    )


class ToolCapabilities(FrozenSchema):
    """Tool access: an override policy plus an ordered ``pattern -> allowed`` map."""

    policy: ToolAccessPolicy = ToolAccessPolicy.allow_all
    capabilities: Dict[str, bool] = Field(default_factory=dict)


class SkillCapabilities(FrozenSchema):
    """Skill access, shaped and merged like ``ToolCapabilities``."""

    policy: ToolAccessPolicy = ToolAccessPolicy.allow_all
    capabilities: Dict[str, bool] = Field(default_factory=dict)


class ModelCapabilities(FrozenSchema):
    """LLM model access as an ordered ``pattern -> allowed`` map."""

    allowed: Dict[str, bool] = Field(default_factory=lambda: {"*": True})
    default_model: Optional[str] = None


class ApprovalPolicy(FrozenSchema):
    """
    Approval requirements for operations.

    ``default_level`` and ``approval_timeout`` are override fields. The
    ``require_approval`` and ``warn_on`` pattern lists accumulate across
    scopes, and ``auto_approve`` never keeps a pattern that any scope requires
    approval for.
    """

    default_level: ApprovalLevel = ApprovalLevel.none
    require_approval: List[str] = Field(default_factory=list, description="Operations requiring explicit approval.")
    warn_on: List[str] = Field(default_factory=list, description="Operations that trigger warnings.")
    auto_approve: List[str] = Field(default_factory=list, description="Operations approved without asking.")
    approval_timeout: Optional[int] = Field(default=None, ge=0, description="Approval timeout in milliseconds.")


class CommunicationCapabilities(FrozenSchema):
    """Inter-assistant messaging rights. ``allowed_recipients`` is an override field; the rest merge restrictively."""

    can_send_messages: bool = True
    can_receive_messages: bool = True
    can_broadcast: bool = False
    allowed_recipients: Optional[List[str]] = Field(
        default=None, description="Recipient id patterns; None = any recipient."
    )
    message_rate_limit: Optional[int] = Field(default=None, ge=0, description="Messages per minute; None = unlimited.")


class MemoryCapabilities(FrozenSchema):
    """
    Memory access rights.

    ``allowed_memory_scopes`` uses ``"*"`` for "every scope"; merging intersects
    the current list with each scope's list.
    """

    can_access_global_memory: bool = True
    can_write_memory: bool = True
    allowed_memory_scopes: List[str] = Field(default_factory=lambda: ["*"])
    memory_quota: Optional[int] = Field(default=None, ge=0, description="Entry count; None = unlimited.")


class BudgetLimits(FrozenSchema):
    """Numeric budget ceilings. ``None`` means unlimited."""

    max_total_tokens: Optional[int] = Field(default=None, ge=0)
    max_llm_calls: Optional[int] = Field(default=None, ge=0)
    max_tool_calls: Optional[int] = Field(default=None, ge=0)
    max_duration_ms: Optional[int] = Field(default=None, ge=0)


class BudgetCapabilities(FrozenSchema):
    """Budget ceilings plus budget sharing flags."""

    limits: BudgetLimits = Field(default_factory=BudgetLimits)
    can_override_budget: bool = False
    max_subassistant_budget: Optional[BudgetLimits] = Field(
        default=None,
        description="Largest allocation handed to each sub-assistant; unset ceilings are unlimited.",
    )
    shared_budget: bool = True


class AssistantCapabilitySet(FrozenSchema):
    """
    The total policy object for an assistant.

    Every category is always populated. Instances are frozen; derive a changed
    set with ``model_copy(update=...)``.
    """

    enabled: bool = True
    orchestration: OrchestrationCapabilities
    tools: ToolCapabilities = Field(default_factory=ToolCapabilities)
    skills: SkillCapabilities = Field(default_factory=SkillCapabilities)
    models: ModelCapabilities = Field(default_factory=ModelCapabilities)
    approval: ApprovalPolicy = Field(default_factory=ApprovalPolicy)
    communication: CommunicationCapabilities = Field(default_factory=CommunicationCapabilities)
    memory: MemoryCapabilities = Field(default_factory=MemoryCapabilities)
    budget: BudgetCapabilities = Field(default_factory=BudgetCapabilities)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ResolvedCapabilitySet(AssistantCapabilitySet):
    """Output of the resolver: a total set plus provenance."""

    sources: Dict[str, str] = Field(
        default_factory=dict,
        description="Category name -> scope that last wrote an override field of that category.",
    )
    resolved_at: datetime = Field(default_factory=_utc_now)


# =====================================================================
# Patch models
# =====================================================================


class OrchestrationPatch(PatchSchema):
    level: Optional[OrchestrationLevel] = None
    can_spawn_subassistants: Optional[bool] = None
    max_concurrent_subassistants: Optional[int] = Field(default=None, ge=0)
    max_subassistant_depth: Optional[int] = Field(default=None, ge=0)
    can_coordinate_swarms: Optional[bool] = None
    max_swarm_size: Optional[int] = Field(default=None, ge=0)
    can_delegate: Optional[bool] = None
    allowed_delegates: Optional[List[str]] = None


class ToolPatch(PatchSchema):
    policy: Optional[ToolAccessPolicy] = None
    capabilities: Optional[Dict[str, bool]] = None


class SkillPatch(PatchSchema):
    policy: Optional[ToolAccessPolicy] = None
    capabilities: Optional[Dict[str, bool]] = None


class ModelPatch(PatchSchema):
    allowed: Optional[Dict[str, bool]] = None
    default_model: Optional[str] = None


class ApprovalPatch(PatchSchema):
    default_level: Optional[ApprovalLevel] = None
    require_approval: Optional[List[str]] = None
    warn_on: Optional[List[str]] = None
    auto_approve: Optional[List[str]] = None
    approval_timeout: Optional[int] = Field(default=None, ge=0)


class CommunicationPatch(PatchSchema):
    can_send_messages: Optional[bool] = None
    can_receive_messages: Optional[bool] = None
    can_broadcast: Optional[bool] = None
    allowed_recipients: Optional[List[str]] = None
    message_rate_limit: Optional[int] = Field(default=None, ge=0)


class MemoryPatch(PatchSchema):
    can_access_global_memory: Optional[bool] = None
    can_write_memory: Optional[bool] = None
    allowed_memory_scopes: Optional[List[str]] = None
    memory_quota: Optional[int] = Field(default=None, ge=0)


class BudgetLimitsPatch(PatchSchema):
    max_total_tokens: Optional[int] = Field(default=None, ge=0)
    max_llm_calls: Optional[int] = Field(default=None, ge=0)
    max_tool_calls: Optional[int] = Field(default=None, ge=0)
    max_duration_ms: Optional[int] = Field(default=None, ge=0)


class BudgetPatch(PatchSchema):
    limits: Optional[BudgetLimitsPatch] = None
    can_override_budget: Optional[bool] = None
    max_subassistant_budget: Optional[BudgetLimitsPatch] = None
    shared_budget: Optional[bool] = None


class CapabilitySetPatch(PatchSchema):
    """
    A single scope's contribution to a chain.

    Absent categories and ``None`` fields are "no opinion". A patch that carries
    only unrecognized keys validates to an empty patch and resolves as a no-op.
    """

    enabled: Optional[bool] = None
    orchestration: Optional[OrchestrationPatch] = None
    tools: Optional[ToolPatch] = None
    skills: Optional[SkillPatch] = None
    models: Optional[ModelPatch] = None
    approval: Optional[ApprovalPatch] = None
    communication: Optional[CommunicationPatch] = None
    memory: Optional[MemoryPatch] = None
    budget: Optional[BudgetPatch] = None
    metadata: Optional[Dict[str, Any]] = None


PatchLike = Union[CapabilitySetPatch, Mapping[str, Any]]

# Scope name -> patch. Keys are plain strings so callers can carry scopes this
# package does not know about; the resolver skips those.
CapabilityChain = Dict[str, CapabilitySetPatch]


class CapabilitiesConfig(BaseSchema):
    """
    Simplified host configuration consumed by ``config_to_capabilities`` and
    ``CapabilityEnforcer``.

    ``allowed_tools`` is only meaningful with ``tool_policy=allow_list`` and
    ``denied_tools`` only with ``tool_policy=deny_list``.
    """

    enabled: bool = True
    orchestration_level: Optional[OrchestrationLevel] = None
    max_concurrent_subassistants: Optional[int] = Field(default=None, ge=0)
    max_subassistant_depth: Optional[int] = Field(default=None, ge=0)
    tool_policy: Optional[ToolAccessPolicy] = None
    allowed_tools: List[str] = Field(default_factory=list)
    denied_tools: List[str] = Field(default_factory=list)
    allowed_delegates: Optional[List[str]] = None
