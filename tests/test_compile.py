from __future__ import annotations

import logging

import pytest

from patchbay import (
    CompileInProgressError,
    CompileReport,
    CompilerState,
    MemoryEngine,
    Patch,
    Settings,
)

SCENARIO_EDGES = (
    ("filt-1/audio_out", "destination"),
    ("lfo-1/cv_out", "filt-1/frequency"),
    ("osc-1/audio_out", "filt-1/audio_in"),
)


# ---------------------------------------------------------------------------
# Full rebuild
# ---------------------------------------------------------------------------


class TestRebuild:
    def test_scenario(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        report = scenario_patch.compiler.last_report
        assert report is not None
        assert report.ok
        assert len(report.wired) == 3
        assert engine.calls == 3
        assert engine.snapshot() == SCENARIO_EDGES

    def test_remove_connection(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        assert scenario_patch.disconnect("osc-1/audio_out", "filt-1/audio_in")
        assert engine.calls == 2
        assert ("osc-1/audio_out", "filt-1/audio_in") not in engine.snapshot()

    def test_idempotent(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        before = engine.snapshot()
        scenario_patch.compile()
        scenario_patch.compile()
        assert engine.snapshot() == before
        assert engine.calls == 3

    def test_generation_counts_compiles(self, patch: Patch) -> None:
        first = patch.compile()
        second = patch.compile()
        assert second.generation == first.generation + 1
        assert patch.compiler.last_report is second

    def test_replay_in_insertion_order(self, scenario_patch: Patch) -> None:
        report = scenario_patch.compile()
        assert [c.source.key for c in report.wired] == [
            "osc-1/audio_out",
            "filt-1/audio_out",
            "lfo-1/cv_out",
        ]

    def test_order_independent_result(self, settings: Settings) -> None:
        snapshots = []
        for order in (SCENARIO_EDGES, tuple(reversed(SCENARIO_EDGES))):
            engine = MemoryEngine()
            patch = Patch(engine=engine, settings=settings)
            patch.add_module("oscillator", "osc-1")
            patch.add_module("filter", "filt-1")
            patch.add_module("lfo", "lfo-1")
            for source, target in order:
                patch.connect(source, target)
            snapshots.append(engine.snapshot())
        assert snapshots[0] == snapshots[1]

    def test_empty_patch(self, patch: Patch, engine: MemoryEngine) -> None:
        report = patch.compile()
        assert report.ok
        assert report.wired == []
        assert engine.calls == 0

    def test_cables(self, scenario_patch: Patch) -> None:
        report = scenario_patch.compile()
        assert report.cables()[2] == {
            "source": "lfo-1/cv_out",
            "target": "filt-1/frequency",
            "signal_kind": "cv",
        }

    def test_report_serializes(self, scenario_patch: Patch) -> None:
        report = scenario_patch.compile()
        again = CompileReport.model_validate_json(report.model_dump_json())
        assert again == report


class TestMultiSlot:
    def test_slots_wired_independently(self, patch: Patch, engine: MemoryEngine) -> None:
        patch.add_module("oscillator", "osc-1")
        patch.add_module("oscillator", "osc-2")
        patch.add_module("mixer", "mix-1")
        patch.connect("osc-1/audio_out", "mix-1/audio_in/1")
        patch.connect("osc-2/audio_out", "mix-1/audio_in/2")
        patch.connect("mix-1/audio_out", "destination")
        assert ("osc-2/audio_out", "mix-1/audio_in/2") in engine.snapshot()

        patch.disconnect("osc-1/audio_out", "mix-1/audio_in/1")
        assert engine.snapshot() == (
            ("mix-1/audio_out", "destination"),
            ("osc-2/audio_out", "mix-1/audio_in/2"),
        )


# ---------------------------------------------------------------------------
# Partial failure
# ---------------------------------------------------------------------------


class TestPartialFailure:
    def test_unbound_module_skipped(
        self, scenario_patch: Patch, engine: MemoryEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        scenario_patch.binding.unregister("lfo-1")
        with caplog.at_level(logging.WARNING, logger="patchbay.compile"):
            report = scenario_patch.compile()
        assert len(report.wired) == 2
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert failure.kind == "unknown_module"
        assert failure.side == "source"
        assert failure.connection.source.key == "lfo-1/cv_out"
        assert engine.calls == 2
        assert "lfo-1/cv_out" in caplog.text

    def test_engine_refusal_isolated(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        engine.refuse("filt-1/frequency")
        report = scenario_patch.compile()
        assert not report.ok
        assert [f.kind for f in report.failures] == ["engine_error"]
        assert engine.snapshot() == (
            ("filt-1/audio_out", "destination"),
            ("osc-1/audio_out", "filt-1/audio_in"),
        )

    def test_failed_cable_still_rendered(self, patch: Patch, engine: MemoryEngine) -> None:
        patch.add_module("oscillator", "osc-1")
        patch.add_module("filter", "filt-1")
        patch.connect("osc-1/audio_out", "filt-1/audio_in")
        patch.connect("filt-1/audio_out", "destination")
        engine.refuse("filt-1/audio_in")
        report = patch.compile()
        assert len(report.wired) == 1
        assert [f.connection.target.key for f in report.failures] == ["filt-1/audio_in"]
        assert [c["target"] for c in report.cables()] == ["filt-1/audio_in", "destination"]
        assert report.connections == list(patch.connections.list())

    def test_failure_does_not_stick(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        engine.refuse("filt-1/frequency")
        scenario_patch.compile()
        engine.refusing.clear()
        assert scenario_patch.compile().ok
        assert engine.calls == 3


# ---------------------------------------------------------------------------
# State machine & listeners
# ---------------------------------------------------------------------------


class TestState:
    def test_idle_between_compiles(self, scenario_patch: Patch) -> None:
        assert scenario_patch.compiler.state is CompilerState.IDLE

    def test_phases(self, scenario_patch: Patch, engine: MemoryEngine) -> None:
        compiler = scenario_patch.compiler
        seen: list[CompilerState] = []
        teardown = scenario_patch.binding.teardown

        def record_teardown() -> None:
            seen.append(compiler.state)
            teardown()

        out = engine.nodes["osc-1"].outputs["audio_out"]
        connect = out.connect

        def record_connect(target: object) -> None:
            seen.append(compiler.state)
            connect(target)  # type: ignore[arg-type]

        scenario_patch.binding.teardown = record_teardown  # type: ignore[method-assign]
        out.connect = record_connect  # type: ignore[method-assign]
        scenario_patch.compile()
        assert seen == [CompilerState.TEARING_DOWN, CompilerState.REPLAYING]
        assert compiler.state is CompilerState.IDLE

    def test_reentrant_compile_rejected(self, scenario_patch: Patch) -> None:
        unsubscribe = scenario_patch.subscribe(lambda report: scenario_patch.compile())
        with pytest.raises(CompileInProgressError):
            scenario_patch.compile()
        unsubscribe()
        assert scenario_patch.compile().ok


class TestListeners:
    def test_listener_receives_report(self, patch: Patch) -> None:
        reports: list[CompileReport] = []
        patch.subscribe(reports.append)
        patch.add_module("oscillator", "osc-1")
        patch.connect("osc-1/audio_out", "destination")
        assert len(reports) == 2
        assert reports[-1].cables() == [
            {"source": "osc-1/audio_out", "target": "destination", "signal_kind": "audio"}
        ]

    def test_unsubscribe(self, patch: Patch) -> None:
        reports: list[CompileReport] = []
        unsubscribe = patch.subscribe(reports.append)
        patch.compile()
        unsubscribe()
        patch.compile()
        assert len(reports) == 1

    def test_listener_failure_logged(
        self, patch: Patch, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(report: CompileReport) -> None:
            raise RuntimeError("renderer crashed")

        calls: list[int] = []
        patch.subscribe(broken)
        patch.subscribe(lambda report: calls.append(report.generation))
        with caplog.at_level(logging.ERROR, logger="patchbay.compile"):
            report = patch.compile()
        assert report.ok
        assert calls == [report.generation]
        assert "compile listener" in caplog.text
        assert "renderer crashed" in caplog.text


class TestCompileLogging:
    def test_summary_logged(self, engine: MemoryEngine, caplog: pytest.LogCaptureFixture) -> None:
        patch = Patch(engine=engine, settings=Settings(log_compile=True))
        patch.add_module("oscillator", "osc-1")
        with caplog.at_level(logging.INFO, logger="patchbay.compile"):
            patch.connect("osc-1/audio_out", "destination")
        assert "1 wired, 0 failed" in caplog.text

    def test_summary_silenced(
        self, patch: Patch, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="patchbay.compile"):
            patch.compile()
        assert "wired" not in caplog.text
