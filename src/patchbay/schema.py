"""Port schema -- static description of what each module kind exposes."""

from __future__ import annotations

from typing import Iterator

from pydantic import BaseModel

from patchbay.models import ParamSpec, ParamValue, PortSpec


class UnknownModuleKindError(KeyError):
    """Raised when a module kind has no registered schema.

    This is a construction-time bug, not a topology problem, so nothing in
    the compile path catches it.
    """

    def __init__(self, kind: str) -> None:
        super().__init__(kind)
        self.kind = kind

    def __str__(self) -> str:
        return f"Unknown module kind: '{self.kind}'"


class ModuleKindSchema(BaseModel):
    kind: str
    engine_type: str
    ports: list[PortSpec] = []
    params: list[ParamSpec] = []

    def port(self, name: str) -> PortSpec | None:
        for spec in self.ports:
            if spec.name == name:
                return spec
        return None

    def param(self, name: str) -> ParamSpec | None:
        for spec in self.params:
            if spec.name == name:
                return spec
        return None

    def defaults(self) -> dict[str, ParamValue]:
        return {p.name: p.default for p in self.params}


class SchemaRegistry:
    """Lookup table of module kind -> :class:`ModuleKindSchema`."""

    def __init__(self) -> None:
        self._schemas: dict[str, ModuleKindSchema] = {}

    def register(self, schema: ModuleKindSchema) -> None:
        names = [p.name for p in schema.ports] + [p.name for p in schema.params]
        if len(names) != len(set(names)):
            raise ValueError(
                f"Module kind '{schema.kind}' declares a port and parameter with the same name"
            )
        self._schemas[schema.kind] = schema

    def get(self, kind: str) -> ModuleKindSchema:
        try:
            return self._schemas[kind]
        except KeyError:
            raise UnknownModuleKindError(kind) from None

    def kinds(self) -> list[str]:
        return sorted(self._schemas)

    def __contains__(self, kind: object) -> bool:
        return kind in self._schemas

    def __iter__(self) -> Iterator[ModuleKindSchema]:
        return iter(self._schemas[k] for k in self.kinds())


# ---------------------------------------------------------------------------
# Built-in kinds
# ---------------------------------------------------------------------------


def _audio_in() -> PortSpec:
    return PortSpec(name="audio_in", direction="sink", signal_kind="audio")


def _audio_out() -> PortSpec:
    return PortSpec(name="audio_out", direction="source", signal_kind="audio")


def builtin_registry(mixer_channels: int | None = None) -> SchemaRegistry:
    """Return a registry holding the stock oscillator/filter/envelope/... kinds.

    *mixer_channels* defaults to the configured ``mixer_channels`` setting.
    """
    if mixer_channels is None:
        from patchbay.config import get_settings

        mixer_channels = get_settings().mixer_channels
    if mixer_channels < 1:
        raise ValueError(f"mixer_channels must be >= 1, got {mixer_channels}")

    reg = SchemaRegistry()
    reg.register(
        ModuleKindSchema(
            kind="oscillator",
            engine_type="Oscillator",
            ports=[_audio_out()],
            params=[
                ParamSpec(name="frequency", default=440.0, min=20.0, max=20000.0),
                ParamSpec(name="detune", default=0.0, min=-100.0, max=100.0),
                ParamSpec(name="waveform", default="sine", automatable=False),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="filter",
            engine_type="Filter",
            ports=[
                _audio_in(),
                PortSpec(name="cv_in", direction="sink", signal_kind="cv"),
                _audio_out(),
            ],
            params=[
                ParamSpec(name="frequency", default=8000.0, min=20.0, max=20000.0),
                ParamSpec(name="Q", default=1.0, min=0.1, max=20.0),
                ParamSpec(name="type", default="lowpass", automatable=False),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="envelope",
            engine_type="AmplitudeEnvelope",
            ports=[
                _audio_in(),
                PortSpec(name="gate_in", direction="sink", signal_kind="gate"),
                _audio_out(),
            ],
            params=[
                ParamSpec(name="attack", default=0.1, min=0.0, max=2.0),
                ParamSpec(name="decay", default=0.2, min=0.0, max=2.0),
                ParamSpec(name="sustain", default=0.5, min=0.0, max=1.0),
                ParamSpec(name="release", default=1.0, min=0.0, max=5.0),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="lfo",
            engine_type="LFO",
            ports=[PortSpec(name="cv_out", direction="source", signal_kind="cv")],
            params=[
                ParamSpec(name="frequency", default=1.0, min=0.01, max=100.0),
                ParamSpec(name="min", default=200.0, min=20.0, max=20000.0),
                ParamSpec(name="max", default=5000.0, min=20.0, max=20000.0),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="reverb",
            engine_type="Reverb",
            ports=[_audio_in(), _audio_out()],
            params=[
                ParamSpec(name="decay", default=1.5, min=0.1, max=10.0),
                ParamSpec(name="wet", default=0.5, min=0.0, max=1.0),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="equalizer",
            engine_type="EQ3",
            ports=[_audio_in(), _audio_out()],
            params=[
                ParamSpec(name="low", default=0.0, min=-24.0, max=24.0),
                ParamSpec(name="mid", default=0.0, min=-24.0, max=24.0),
                ParamSpec(name="high", default=0.0, min=-24.0, max=24.0),
            ],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="mixer",
            engine_type="Mixer",
            ports=[
                PortSpec(
                    name="audio_in",
                    direction="sink",
                    signal_kind="audio",
                    slot_count=mixer_channels,
                ),
                _audio_out(),
            ],
            params=[ParamSpec(name="volume", default=0.0, min=-60.0, max=6.0)],
        )
    )
    reg.register(
        ModuleKindSchema(
            kind="sequencer",
            engine_type="Sequence",
            ports=[
                PortSpec(name="gate_out", direction="source", signal_kind="gate"),
                PortSpec(name="cv_out", direction="source", signal_kind="cv"),
            ],
            params=[ParamSpec(name="tempo", default=120.0, min=20.0, max=300.0)],
        )
    )
    return reg
