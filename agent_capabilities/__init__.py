"""agent-capabilities.

Capability resolution, storage and enforcement for a multi-agent orchestration
runtime. The agent loop consults this package before every privileged action:
spawning a sub-assistant, invoking a tool, delegating work, or coordinating a
swarm.

Core subpackages
----------------

- ``agent_capabilities.capabilities``:

  - Capability schema (total sets and per-scope patches) and default tables.
  - The chain resolver with override and restrictive merge rules.
  - An in-memory per-entity repository of chains and overrides.
  - ``CapabilityEnforcer``, the synchronous runtime guard.

- ``agent_capabilities.core``:

  - Environment-driven settings and logging setup.

Typical workflow
----------------

1. Build one ``CapabilityRuntime`` at startup from host configuration.
2. Ask ``runtime.get_enforcer()`` for a verdict before each privileged action.
3. Treat ``allowed=False`` as a hard stop and ``requires_approval=True`` as a
   mandatory pause for approval.
4. For layered policy, store per-entity chains with ``CapabilityStorage`` and
   resolve them with ``resolve_capability_chain``.

Nothing here executes tools or talks to the network; decisions are pure
in-memory computations.
"""

__version__ = "0.1.0"
