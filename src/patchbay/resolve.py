"""Addressing & resolution -- turn port references into live engine handles."""

from __future__ import annotations

from typing import Any, Literal, Union

from patchbay.engine import BoundModule, EngineRegistry
from patchbay.models import Connection, ParamRef, PortRef, SinkRef, SlotRef
from patchbay.schema import SchemaRegistry

Side = Literal["source", "target"]
Ref = Union[PortRef, SlotRef, ParamRef, SinkRef]


class ResolutionError(LookupError):
    """A reference that cannot be resolved against the live engine binding.

    ``kind`` is one of ``unknown_module``, ``unknown_port``,
    ``unknown_param``, ``slot_out_of_range``, ``missing_slot`` or
    ``bad_direction``; ``side`` says which end of ``connection`` failed.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        side: Side,
        connection: Connection | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.side = side
        self.connection = connection

    def __str__(self) -> str:
        text = f"{self.side}: {self.args[0]}"
        if self.connection is not None:
            text += f" [{self.connection}]"
        return text


def _bound(
    ref: PortRef | SlotRef | ParamRef,
    binding: EngineRegistry,
    side: Side,
    connection: Connection | None,
) -> BoundModule:
    if ref.module_id not in binding:
        raise ResolutionError(
            "unknown_module",
            f"module '{ref.module_id}' is not bound to the engine",
            side=side,
            connection=connection,
        )
    return binding.get(ref.module_id)


def resolve_reference(
    ref: Ref,
    binding: EngineRegistry,
    registry: SchemaRegistry,
    *,
    side: Side,
    connection: Connection | None = None,
) -> Any:
    """Return the engine handle *ref* addresses.

    Slot indices are 1-based here and 0-based in the engine's ``slots``.
    Raises :class:`ResolutionError`.
    """
    if isinstance(ref, SinkRef):
        if side != "target":
            raise ResolutionError(
                "bad_direction",
                "'destination' can only be a target",
                side=side,
                connection=connection,
            )
        return binding.destination

    bound = _bound(ref, binding, side, connection)
    node = bound.node
    schema = registry.get(bound.instance.kind)

    if isinstance(ref, ParamRef):
        params = getattr(node, "params", None) or {}
        spec = schema.param(ref.param)
        if side != "target" or spec is None or ref.param not in params:
            raise ResolutionError(
                "unknown_param",
                f"'{ref.key}' is not an automatable parameter",
                side=side,
                connection=connection,
            )
        return params[ref.param]

    port = schema.port(ref.port)
    if port is None:
        raise ResolutionError(
            "unknown_port",
            f"module '{ref.module_id}' ({bound.instance.kind}) has no port '{ref.port}'",
            side=side,
            connection=connection,
        )
    expected = "source" if side == "source" else "sink"
    if port.direction != expected:
        raise ResolutionError(
            "bad_direction",
            f"'{ref.module_id}/{ref.port}' is not a {expected} port",
            side=side,
            connection=connection,
        )

    if isinstance(ref, SlotRef):
        slots = getattr(node, "slots", None) or ()
        limit = min(port.slot_count, len(slots))
        if not port.multi_slot or not 1 <= ref.slot <= limit:
            raise ResolutionError(
                "slot_out_of_range",
                f"slot {ref.slot} of '{ref.module_id}/{ref.port}' is outside [1, {limit}]",
                side=side,
                connection=connection,
            )
        return slots[ref.slot - 1]

    if port.multi_slot:
        raise ResolutionError(
            "missing_slot",
            f"'{ref.key}' has {port.slot_count} slots; address one of them",
            side=side,
            connection=connection,
        )
    handles = getattr(node, "outputs" if side == "source" else "inputs", None) or {}
    return handles.get(ref.port, node)
