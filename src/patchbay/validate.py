from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Mapping, Union

from patchbay.models import (
    DESTINATION,
    Connection,
    ModuleInstance,
    ParamRef,
    PortRef,
    PortSpec,
    SignalKind,
    SinkRef,
    SlotRef,
)
from patchbay.schema import SchemaRegistry

if TYPE_CHECKING:
    from patchbay.connections import ConnectionSet

Ref = Union[PortRef, SlotRef, ParamRef, SinkRef]

# Which sink kinds a source kind may drive.  cv may drive a gate input; the
# reverse is not declared.
COMPATIBILITY: dict[str, frozenset[str]] = {
    "audio": frozenset({"audio"}),
    "cv": frozenset({"cv", "gate"}),
    "gate": frozenset({"gate"}),
}

RULES = ("direction", "signal", "duplicate", "self_loop")


class Rejection(str):
    """A structured rejection reason that behaves as a plain string.

    ``rule`` names the failed check: one of :data:`RULES`, ``address`` for
    text that does not parse, or ``dangling`` for the optional topology
    warning.
    """

    rule: str
    source: str | None
    target: str | None
    severity: str  # "error" | "warning"

    def __new__(
        cls,
        rule: str,
        message: str,
        *,
        source: str | None = None,
        target: str | None = None,
        severity: str = "error",
    ) -> Rejection:
        return super().__new__(cls, message)

    def __init__(
        self,
        rule: str,
        message: str,
        *,
        source: str | None = None,
        target: str | None = None,
        severity: str = "error",
    ) -> None:
        self.rule = rule
        self.source = source
        self.target = target
        self.severity = severity


# ---------------------------------------------------------------------------
# Schema lookups
# ---------------------------------------------------------------------------


def _port_spec(
    ref: PortRef | SlotRef,
    modules: Mapping[str, ModuleInstance],
    registry: SchemaRegistry,
) -> PortSpec | str:
    """Return the port spec *ref* names, or a reason string when it names nothing."""
    module = modules.get(ref.module_id)
    if module is None:
        return f"unknown module '{ref.module_id}'"
    spec = registry.get(module.kind).port(ref.port)
    if spec is None:
        return f"module '{ref.module_id}' ({module.kind}) has no port '{ref.port}'"
    if isinstance(ref, SlotRef):
        if not spec.multi_slot:
            return f"port '{ref.module_id}/{ref.port}' is not a multi-slot port"
        if not 1 <= ref.slot <= spec.slot_count:
            return f"slot {ref.slot} of '{ref.module_id}/{ref.port}' is outside [1, {spec.slot_count}]"
    elif spec.multi_slot:
        return f"multi-slot port '{ref.key}' needs a slot index (1..{spec.slot_count})"
    return spec


def source_signal(
    ref: Ref, modules: Mapping[str, ModuleInstance], registry: SchemaRegistry
) -> SignalKind | None:
    """Signal kind emitted by a source reference (None if it is not a source port)."""
    if not isinstance(ref, PortRef):
        return None
    spec = _port_spec(ref, modules, registry)
    if isinstance(spec, str) or spec.direction != "source":
        return None
    return spec.signal_kind


def target_signal(
    ref: Ref, modules: Mapping[str, ModuleInstance], registry: SchemaRegistry
) -> SignalKind | None:
    """Signal kind accepted by a target reference (None if it is not a valid target)."""
    if isinstance(ref, SinkRef):
        return "audio"
    if isinstance(ref, ParamRef):
        return "cv"
    spec = _port_spec(ref, modules, registry)
    if isinstance(spec, str) or spec.direction != "sink":
        return None
    return spec.signal_kind


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def check_direction(
    source: Ref,
    target: Ref,
    modules: Mapping[str, ModuleInstance],
    registry: SchemaRegistry,
) -> Rejection | None:
    """Rule 1: source is a source port; target is a sink port, parameter or the sink."""
    src, tgt = source.key, target.key

    if not isinstance(source, PortRef):
        return Rejection(
            "direction",
            f"Source '{src}' is not a plain output port",
            source=src,
            target=tgt,
        )
    spec = _port_spec(source, modules, registry)
    if isinstance(spec, str):
        return Rejection("direction", f"Source: {spec}", source=src, target=tgt)
    if spec.direction != "source":
        return Rejection(
            "direction", f"Source '{src}' is an input port", source=src, target=tgt
        )

    if isinstance(target, SinkRef):
        return None
    if isinstance(target, ParamRef):
        module = modules.get(target.module_id)
        if module is None:
            return Rejection(
                "direction",
                f"Target: unknown module '{target.module_id}'",
                source=src,
                target=tgt,
            )
        param = registry.get(module.kind).param(target.param)
        if param is None:
            return Rejection(
                "direction",
                f"Target: module '{target.module_id}' ({module.kind}) has no "
                f"parameter '{target.param}'",
                source=src,
                target=tgt,
            )
        if not param.automatable:
            return Rejection(
                "direction",
                f"Target parameter '{tgt}' is not automatable",
                source=src,
                target=tgt,
            )
        return None

    spec = _port_spec(target, modules, registry)
    if isinstance(spec, str):
        return Rejection("direction", f"Target: {spec}", source=src, target=tgt)
    if spec.direction != "sink":
        return Rejection(
            "direction", f"Target '{tgt}' is an output port", source=src, target=tgt
        )
    return None


def check_signal(
    source: Ref,
    target: Ref,
    modules: Mapping[str, ModuleInstance],
    registry: SchemaRegistry,
) -> Rejection | None:
    """Rule 2: table lookup in :data:`COMPATIBILITY`.

    Assumes :func:`check_direction` already passed.
    """
    src_kind = source_signal(source, modules, registry)
    tgt_kind = target_signal(target, modules, registry)
    if src_kind is None or tgt_kind is None:
        return Rejection(
            "signal",
            f"Cannot determine signal kinds for '{source.key}' -> '{target.key}'",
            source=source.key,
            target=target.key,
        )
    if tgt_kind not in COMPATIBILITY[src_kind]:
        return Rejection(
            "signal",
            f"Incompatible signals: {src_kind} '{source.key}' cannot drive "
            f"{tgt_kind} '{target.key}'",
            source=source.key,
            target=target.key,
        )
    return None


def check_duplicate(
    source: Ref, target: Ref, connections: Iterable[Connection]
) -> Rejection | None:
    """Rule 3: no identical (source, target) pair.

    Slot indices are part of the key, and a slot of a multi-slot sink holds
    one connection: a second source into an occupied slot is a duplicate
    for that slot only.
    """
    key = (source.key, target.key)
    for conn in connections:
        if conn.key == key:
            return Rejection(
                "duplicate",
                f"Duplicate connection: '{source.key}' -> '{target.key}'",
                source=source.key,
                target=target.key,
            )
        if isinstance(target, SlotRef) and conn.target.key == target.key:
            return Rejection(
                "duplicate",
                f"Slot '{target.key}' is already fed by '{conn.source.key}'",
                source=source.key,
                target=target.key,
            )
    return None


def check_self_loop(source: Ref, target: Ref) -> Rejection | None:
    """Rule 4: a module may not feed itself."""
    if source.owner_id is not None and source.owner_id == target.owner_id:
        return Rejection(
            "self_loop",
            f"Module '{source.owner_id}' cannot feed itself",
            source=source.key,
            target=target.key,
        )
    return None


# ---------------------------------------------------------------------------
# Composite checks
# ---------------------------------------------------------------------------


def check_rules(
    source: Ref,
    target: Ref,
    modules: Mapping[str, ModuleInstance],
    registry: SchemaRegistry,
    connections: Iterable[Connection],
) -> Rejection | None:
    return (
        check_direction(source, target, modules, registry)
        or check_signal(source, target, modules, registry)
        or check_duplicate(source, target, connections)
        or check_self_loop(source, target)
    )


def check_connection(source: Ref, target: Ref, existing: ConnectionSet) -> Rejection | None:
    """Apply the four rules in order and return the first failure (None = allowed)."""
    return check_rules(source, target, existing.modules, existing.registry, existing.list())


def can_connect(source: Ref, target: Ref, existing: ConnectionSet) -> bool:
    return check_connection(source, target, existing) is None


def validate_patch(
    modules: Mapping[str, ModuleInstance],
    registry: SchemaRegistry,
    connections: Iterable[Connection],
    *,
    warn_dangling: bool = False,
) -> list[Rejection]:
    """Re-check a whole connection list and return errors (empty = valid).

    Each connection is checked against the ones before it, so a repeated
    entry reports as a duplicate.  With *warn_dangling*, warnings for audio
    sources whose chain never reaches ``destination`` follow the errors.
    """
    errors: list[Rejection] = []
    accepted: list[Connection] = []
    for conn in connections:
        rejection = check_rules(conn.source, conn.target, modules, registry, accepted)
        if rejection is not None:
            errors.append(rejection)
            continue
        declared = source_signal(conn.source, modules, registry)
        if declared != conn.signal_kind:
            errors.append(
                Rejection(
                    "signal",
                    f"Connection '{conn.source.key}' -> '{conn.target.key}' is tagged "
                    f"{conn.signal_kind} but the source emits {declared}",
                    source=conn.source.key,
                    target=conn.target.key,
                )
            )
            continue
        accepted.append(conn)

    if warn_dangling:
        from patchbay.topology import dangling_sources

        for key in dangling_sources(modules, accepted):
            errors.append(
                Rejection(
                    "dangling",
                    f"Audio from '{key}' never reaches '{DESTINATION}'",
                    source=key,
                    severity="warning",
                )
            )
    return errors
