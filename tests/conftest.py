from __future__ import annotations

import pytest

from patchbay import (
    ConnectionSet,
    MemoryEngine,
    ModuleInstance,
    Patch,
    SchemaRegistry,
    Settings,
    builtin_registry,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(log_level="WARNING", mixer_channels=8, log_compile=False)


@pytest.fixture
def registry() -> SchemaRegistry:
    return builtin_registry(mixer_channels=8)


@pytest.fixture
def modules() -> dict[str, ModuleInstance]:
    """One of each kind used across the validator and connection-set tests."""
    return {
        m.id: m
        for m in [
            ModuleInstance(id="osc-1", kind="oscillator"),
            ModuleInstance(id="osc-2", kind="oscillator"),
            ModuleInstance(id="osc-3", kind="oscillator"),
            ModuleInstance(id="filt-1", kind="filter"),
            ModuleInstance(id="env-1", kind="envelope"),
            ModuleInstance(id="lfo-1", kind="lfo"),
            ModuleInstance(id="seq-1", kind="sequencer"),
            ModuleInstance(id="mix-1", kind="mixer"),
        ]
    }


@pytest.fixture
def connection_set(
    modules: dict[str, ModuleInstance], registry: SchemaRegistry
) -> ConnectionSet:
    return ConnectionSet(modules, registry)


@pytest.fixture
def engine() -> MemoryEngine:
    return MemoryEngine()


@pytest.fixture
def patch(settings: Settings, engine: MemoryEngine) -> Patch:
    return Patch("test", engine=engine, settings=settings)


@pytest.fixture
def scenario_patch(patch: Patch) -> Patch:
    """osc-1 -> filt-1 -> destination, with lfo-1 modulating the filter cutoff."""
    patch.add_module("oscillator", "osc-1")
    patch.add_module("filter", "filt-1")
    patch.add_module("lfo", "lfo-1")
    patch.connect("osc-1/audio_out", "filt-1/audio_in")
    patch.connect("filt-1/audio_out", "destination")
    patch.connect("lfo-1/cv_out", "filt-1/frequency")
    return patch
