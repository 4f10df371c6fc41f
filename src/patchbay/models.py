from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from patchbay.schema import SchemaRegistry

SignalKind = Literal["audio", "cv", "gate"]
Direction = Literal["source", "sink"]

# Literal sentinel naming the global audio sink.
DESTINATION = "destination"

# Value type of a module control (numeric controls are automatable).
ParamValue = Union[float, str]


# ---------------------------------------------------------------------------
# Port & parameter declarations
# ---------------------------------------------------------------------------


class PortSpec(BaseModel):
    name: str
    direction: Direction
    signal_kind: SignalKind
    slot_count: int = Field(default=1, ge=1)

    @property
    def multi_slot(self) -> bool:
        return self.slot_count > 1


class ParamSpec(BaseModel):
    name: str
    default: ParamValue = 0.0
    min: Optional[float] = None
    max: Optional[float] = None
    automatable: bool = True

    def check(self, value: object) -> ParamValue:
        """Return *value* as this control's type, or raise ``ValueError``.

        Controls with a string default (waveform, filter type) take strings;
        every other control takes a number within ``[min, max]``.
        """
        if isinstance(self.default, str):
            if not isinstance(value, str):
                raise ValueError(f"Parameter '{self.name}' expects a string, got {value!r}")
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Parameter '{self.name}' expects a number, got {value!r}")
        if (self.min is not None and value < self.min) or (
            self.max is not None and value > self.max
        ):
            raise ValueError(
                f"Parameter '{self.name}' value {value} is outside [{self.min}, {self.max}]"
            )
        return float(value)


class Port(BaseModel):
    """A :class:`PortSpec` bound to one module instance."""

    owner_id: str
    name: str
    direction: Direction
    signal_kind: SignalKind
    slot_count: int = 1


class ParameterTarget(BaseModel):
    owner_id: str
    param_name: str


# ---------------------------------------------------------------------------
# Module instances
# ---------------------------------------------------------------------------


def check_module_id(value: str) -> str:
    """Reject module IDs that cannot be told apart in an address."""
    if "/" in value or value != value.strip():
        raise ValueError(f"Module ID '{value}' must not contain '/' or surrounding whitespace")
    if value == DESTINATION:
        raise ValueError(f"Module ID '{DESTINATION}' is reserved for the audio sink")
    return value


class ModuleInstance(BaseModel):
    id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    params: dict[str, ParamValue] = {}

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        return check_module_id(value)

    def ports(self, registry: SchemaRegistry) -> list[Port]:
        schema = registry.get(self.kind)
        return [
            Port(
                owner_id=self.id,
                name=spec.name,
                direction=spec.direction,
                signal_kind=spec.signal_kind,
                slot_count=spec.slot_count,
            )
            for spec in schema.ports
        ]

    def param_targets(self, registry: SchemaRegistry) -> list[ParameterTarget]:
        schema = registry.get(self.kind)
        return [
            ParameterTarget(owner_id=self.id, param_name=p.name)
            for p in schema.params
            if p.automatable
        ]


# ---------------------------------------------------------------------------
# Port references (discriminated union on "shape")
# ---------------------------------------------------------------------------


class PortRef(BaseModel):
    shape: Literal["port"] = "port"
    module_id: str
    port: str

    @property
    def owner_id(self) -> str | None:
        return self.module_id

    @property
    def key(self) -> str:
        return f"{self.module_id}/{self.port}"


class SlotRef(BaseModel):
    shape: Literal["slot"] = "slot"
    module_id: str
    port: str
    slot: int  # 1-based

    @property
    def owner_id(self) -> str | None:
        return self.module_id

    @property
    def key(self) -> str:
        return f"{self.module_id}/{self.port}/{self.slot}"


class ParamRef(BaseModel):
    shape: Literal["param"] = "param"
    module_id: str
    param: str

    @property
    def owner_id(self) -> str | None:
        return self.module_id

    @property
    def key(self) -> str:
        return f"{self.module_id}/{self.param}"


class SinkRef(BaseModel):
    shape: Literal["sink"] = "sink"

    @property
    def owner_id(self) -> str | None:
        return None

    @property
    def key(self) -> str:
        return DESTINATION


PortReference = Annotated[
    Union[PortRef, SlotRef, ParamRef, SinkRef],
    Field(discriminator="shape"),
]


class Connection(BaseModel):
    source: PortReference
    target: PortReference
    signal_kind: SignalKind

    @property
    def key(self) -> tuple[str, str]:
        return (self.source.key, self.target.key)

    def __str__(self) -> str:
        return f"{self.source.key} -> {self.target.key} ({self.signal_kind})"


# ---------------------------------------------------------------------------
# Patch documents
# ---------------------------------------------------------------------------


class ModuleDeclaration(BaseModel):
    id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    params: dict[str, ParamValue] = {}

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        return check_module_id(value)


class ConnectionDeclaration(BaseModel):
    source: str  # address text, e.g. "osc-1/audio_out"
    target: str  # address text, e.g. "mix-1/audio_in/3" or "destination"


class PatchDocument(BaseModel):
    name: str = "patch"
    modules: list[ModuleDeclaration] = []
    connections: list[ConnectionDeclaration] = []


# ---------------------------------------------------------------------------
# Address parsing
# ---------------------------------------------------------------------------


class AddressError(ValueError):
    """Raised for text that is not a well-formed port address."""


def parse_address(
    text: str,
    modules: Mapping[str, ModuleInstance] | None = None,
    registry: SchemaRegistry | None = None,
) -> PortRef | SlotRef | ParamRef | SinkRef:
    """Parse ``module/port``, ``module/port/slot``, ``module/param`` or ``destination``.

    A two-part address is a parameter reference only when *modules* and
    *registry* identify the module's kind and the name is one of its
    parameters but not one of its ports.  Everything else is read as a port;
    whether it exists is for the validator to decide.
    """
    text = text.strip()
    if text == DESTINATION:
        return SinkRef()

    parts = text.split("/")
    if len(parts) not in (2, 3) or any(not p for p in parts):
        raise AddressError(f"Malformed address '{text}'")

    module_id, name = parts[0], parts[1]
    if len(parts) == 3:
        try:
            slot = int(parts[2])
        except ValueError:
            raise AddressError(f"Slot index in '{text}' is not an integer") from None
        return SlotRef(module_id=module_id, port=name, slot=slot)

    if modules is not None and registry is not None and module_id in modules:
        kind = modules[module_id].kind
        if kind in registry:
            schema = registry.get(kind)
            if schema.port(name) is None and schema.param(name) is not None:
                return ParamRef(module_id=module_id, param=name)
    return PortRef(module_id=module_id, port=name)


def as_reference(
    ref: str | PortRef | SlotRef | ParamRef | SinkRef,
    modules: Mapping[str, ModuleInstance] | None = None,
    registry: SchemaRegistry | None = None,
) -> PortRef | SlotRef | ParamRef | SinkRef:
    """Accept either an address string or an already-built reference."""
    if isinstance(ref, str):
        return parse_address(ref, modules, registry)
    return ref
