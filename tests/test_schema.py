from __future__ import annotations

import pytest

from patchbay import (
    ModuleKindSchema,
    ParamSpec,
    PortSpec,
    SchemaRegistry,
    Settings,
    UnknownModuleKindError,
    builtin_registry,
    get_settings,
)


class TestBuiltinKinds:
    def test_kinds(self, registry: SchemaRegistry) -> None:
        assert registry.kinds() == [
            "envelope",
            "equalizer",
            "filter",
            "lfo",
            "mixer",
            "oscillator",
            "reverb",
            "sequencer",
        ]

    def test_oscillator_defaults(self, registry: SchemaRegistry) -> None:
        schema = registry.get("oscillator")
        assert schema.engine_type == "Oscillator"
        assert schema.defaults() == {"frequency": 440.0, "detune": 0.0, "waveform": "sine"}

    def test_filter_ports(self, registry: SchemaRegistry) -> None:
        schema = registry.get("filter")
        assert schema.port("audio_in").direction == "sink"
        assert schema.port("cv_in").signal_kind == "cv"
        assert schema.port("audio_out").direction == "source"
        assert schema.port("frequency") is None
        assert schema.param("frequency").default == 8000.0
        assert schema.param("type").automatable is False

    def test_envelope_gate(self, registry: SchemaRegistry) -> None:
        assert registry.get("envelope").port("gate_in").signal_kind == "gate"

    def test_mixer_slot_count(self) -> None:
        assert builtin_registry(mixer_channels=4).get("mixer").port("audio_in").slot_count == 4

    def test_mixer_channels_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PATCHBAY_MIXER_CHANNELS", "3")
        get_settings.cache_clear()
        try:
            assert builtin_registry().get("mixer").port("audio_in").slot_count == 3
        finally:
            get_settings.cache_clear()

    def test_bad_mixer_channels(self) -> None:
        with pytest.raises(ValueError, match="mixer_channels"):
            builtin_registry(mixer_channels=0)

    def test_sequencer_sources(self, registry: SchemaRegistry) -> None:
        schema = registry.get("sequencer")
        assert {p.name for p in schema.ports if p.direction == "source"} == {"gate_out", "cv_out"}

    def test_iteration_sorted(self, registry: SchemaRegistry) -> None:
        assert [s.kind for s in registry] == registry.kinds()


class TestRegistry:
    def test_unknown_kind_is_fatal(self, registry: SchemaRegistry) -> None:
        with pytest.raises(UnknownModuleKindError) as exc_info:
            registry.get("theremin")
        assert exc_info.value.kind == "theremin"
        assert "Unknown module kind: 'theremin'" in str(exc_info.value)

    def test_unknown_kind_is_key_error(self, registry: SchemaRegistry) -> None:
        with pytest.raises(KeyError):
            registry.get("theremin")

    def test_contains(self, registry: SchemaRegistry) -> None:
        assert "mixer" in registry
        assert "theremin" not in registry

    def test_register_custom_kind(self) -> None:
        reg = SchemaRegistry()
        reg.register(
            ModuleKindSchema(
                kind="vca",
                engine_type="Gain",
                ports=[
                    PortSpec(name="in", direction="sink", signal_kind="audio"),
                    PortSpec(name="out", direction="source", signal_kind="audio"),
                ],
                params=[ParamSpec(name="gain", default=1.0)],
            )
        )
        assert reg.get("vca").port("out").signal_kind == "audio"

    def test_register_rejects_name_clash(self) -> None:
        reg = SchemaRegistry()
        with pytest.raises(ValueError, match="same name"):
            reg.register(
                ModuleKindSchema(
                    kind="odd",
                    engine_type="Odd",
                    ports=[PortSpec(name="level", direction="sink", signal_kind="cv")],
                    params=[ParamSpec(name="level")],
                )
            )


class TestSettings:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PATCHBAY_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PATCHBAY_LOG_COMPILE", "false")
        s = Settings()
        assert s.log_level == "DEBUG"
        assert s.log_compile is False

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PATCHBAY_MIXER_CHANNELS", raising=False)
        assert Settings().mixer_channels == 8
