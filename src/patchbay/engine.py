"""Engine binding -- the registry of live processing objects the compiler wires.

The compiler never creates or destroys engine objects; it only calls
``connect``/``disconnect`` on what is registered here.  Any engine whose
nodes satisfy :class:`EngineNode` can be bound.  :class:`MemoryEngine` is
an in-process implementation that records wiring instead of producing
sound; the CLI and the test-suite run against it.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, NamedTuple, Protocol, Sequence

from patchbay.models import DESTINATION, ModuleInstance
from patchbay.schema import ModuleKindSchema

logger = logging.getLogger(__name__)


class Connectable(Protocol):
    def connect(self, target: Any) -> None: ...

    def disconnect(self) -> None: ...


class EngineNode(Connectable, Protocol):
    """A live processing object.

    Optional attributes, looked up with ``getattr``:

    - ``outputs``: port name -> connectable handle (defaults to the node)
    - ``inputs``: port name -> target handle (defaults to the node)
    - ``params``: parameter name -> automatable control handle
    - ``slots``: ordered per-slot handles of a multi-slot sink
    """


class EngineFactory(Protocol):
    destination: Any

    def create_node(self, instance: ModuleInstance, schema: ModuleKindSchema) -> EngineNode: ...


class BoundModule(NamedTuple):
    instance: ModuleInstance
    node: EngineNode


def owned_handles(node: EngineNode) -> list[Connectable]:
    """Sub-objects of *node* that carry their own live connections."""
    handles: list[Connectable] = []
    seen = {id(node)}
    outputs: Mapping[str, Connectable] = getattr(node, "outputs", None) or {}
    slots: Sequence[Connectable] = getattr(node, "slots", None) or ()
    for handle in [*outputs.values(), *slots]:
        if id(handle) in seen or not hasattr(handle, "disconnect"):
            continue
        seen.add(id(handle))
        handles.append(handle)
    return handles


class EngineRegistry:
    """Explicit module id -> live node registry, injected into the compiler."""

    def __init__(self, destination: Any) -> None:
        self.destination = destination
        self._bound: dict[str, BoundModule] = {}

    def register(self, instance: ModuleInstance, node: EngineNode) -> None:
        if instance.id in self._bound:
            raise ValueError(f"Module '{instance.id}' is already bound")
        self._bound[instance.id] = BoundModule(instance, node)
        logger.debug("bound %s (%s)", instance.id, instance.kind)

    def unregister(self, module_id: str) -> EngineNode | None:
        """Drop a module, disconnecting its node first.  Unknown IDs are ignored."""
        bound = self._bound.pop(module_id, None)
        if bound is None:
            return None
        _disconnect_all(bound.node)
        logger.debug("unbound %s", module_id)
        return bound.node

    def get(self, module_id: str) -> BoundModule:
        return self._bound[module_id]

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._bound

    def __iter__(self) -> Iterator[BoundModule]:
        return iter(list(self._bound.values()))

    def __len__(self) -> int:
        return len(self._bound)

    def teardown(self) -> None:
        """Disconnect every registered node and every owned sub-object."""
        for bound in self:
            _disconnect_all(bound.node)


def _disconnect_all(node: EngineNode) -> None:
    node.disconnect()
    for handle in owned_handles(node):
        handle.disconnect()


# ---------------------------------------------------------------------------
# In-memory engine
# ---------------------------------------------------------------------------


class EngineError(RuntimeError):
    """Raised by :class:`MemoryEngine` handles that were told to refuse connections."""


class MemoryHandle:
    """A connection point that records what it is connected to."""

    def __init__(self, label: str, engine: MemoryEngine) -> None:
        self.label = label
        self.targets: list[MemoryHandle] = []
        self._engine = engine

    def connect(self, target: MemoryHandle) -> None:
        if target.label in self._engine.refusing:
            raise EngineError(f"{target.label} refused a connection from {self.label}")
        self.targets.append(target)

    def disconnect(self) -> None:
        self.targets.clear()

    def __repr__(self) -> str:
        return f"MemoryHandle({self.label!r})"


class MemoryNode(MemoryHandle):
    def __init__(self, instance: ModuleInstance, schema: ModuleKindSchema, engine: MemoryEngine):
        super().__init__(instance.id, engine)
        self.kind = instance.kind
        self.engine_type = schema.engine_type
        self.values = {**schema.defaults(), **instance.params}
        self.outputs: dict[str, MemoryHandle] = {}
        self.inputs: dict[str, MemoryHandle] = {}
        self.slots: list[MemoryHandle] = []
        self.params: dict[str, MemoryHandle] = {}

        for port in schema.ports:
            label = f"{instance.id}/{port.name}"
            if port.direction == "source":
                self.outputs[port.name] = MemoryHandle(label, engine)
            elif port.multi_slot:
                self.slots.extend(
                    MemoryHandle(f"{label}/{i + 1}", engine) for i in range(port.slot_count)
                )
            else:
                self.inputs[port.name] = MemoryHandle(label, engine)
        for param in schema.params:
            if param.automatable:
                self.params[param.name] = MemoryHandle(f"{instance.id}/{param.name}", engine)

    def set(self, name: str, value: object) -> None:
        self.values[name] = value


class MemoryEngine:
    """Engine factory that builds :class:`MemoryNode` objects and inspects their wiring."""

    def __init__(self) -> None:
        self.refusing: set[str] = set()
        self.destination = MemoryHandle(DESTINATION, self)
        self.nodes: dict[str, MemoryNode] = {}

    def create_node(self, instance: ModuleInstance, schema: ModuleKindSchema) -> MemoryNode:
        node = MemoryNode(instance, schema, self)
        self.nodes[instance.id] = node
        return node

    def release(self, module_id: str) -> None:
        self.nodes.pop(module_id, None)

    def refuse(self, label: str) -> None:
        """Make every future ``connect`` into the handle labelled *label* fail."""
        self.refusing.add(label)

    def live_edges(self) -> list[tuple[str, str]]:
        """All live ``(source, target)`` edges, one per connect call since teardown."""
        edges: list[tuple[str, str]] = []
        for node in self.nodes.values():
            for handle in [node, *node.outputs.values(), *node.slots]:
                edges.extend((handle.label, t.label) for t in handle.targets)
        return edges

    def snapshot(self) -> tuple[tuple[str, str], ...]:
        """Sorted live edges, for order-independent comparisons."""
        return tuple(sorted(self.live_edges()))

    @property
    def calls(self) -> int:
        return len(self.live_edges())
