"""Graph compiler -- rebuild live engine wiring from the connection set."""

from __future__ import annotations

import enum
import logging
from typing import Callable, Iterable, Optional

from pydantic import BaseModel

from patchbay.config import Settings, get_settings
from patchbay.connections import ConnectionSet
from patchbay.engine import EngineRegistry
from patchbay.models import Connection
from patchbay.resolve import ResolutionError, resolve_reference
from patchbay.schema import SchemaRegistry

logger = logging.getLogger(__name__)


class CompilerState(str, enum.Enum):
    IDLE = "idle"
    TEARING_DOWN = "tearing-down"
    REPLAYING = "replaying"


class CompileInProgressError(RuntimeError):
    """Raised when a compile is requested from inside a running compile."""


class ResolutionFailure(BaseModel):
    kind: str  # ResolutionError kind, or "engine_error"
    side: Optional[str] = None
    message: str
    connection: Connection

    def __str__(self) -> str:
        return f"{self.connection}: {self.message}"


class CompileReport(BaseModel):
    """Outcome of one compile.

    ``connections`` is the full ordered connection set that was replayed;
    ``wired`` is the subset the engine accepted and ``failures`` the rest.
    """

    generation: int
    connections: list[Connection] = []
    wired: list[Connection] = []
    failures: list[ResolutionFailure] = []

    @property
    def ok(self) -> bool:
        return not self.failures

    def cables(self) -> list[dict[str, str]]:
        """Ordered ``{source, target, signal_kind}`` records, one per connection.

        Cables that failed to wire are still listed; ``failures`` says why.
        """
        return [
            {"source": c.source.key, "target": c.target.key, "signal_kind": c.signal_kind}
            for c in self.connections
        ]


Listener = Callable[[CompileReport], None]


class GraphCompiler:
    """Make the engine binding's wiring match a :class:`ConnectionSet` exactly.

    Every :meth:`compile` disconnects everything the binding owns, then
    replays the connection list in insertion order.  There is no incremental
    diffing.  A connection that fails to resolve, or that the engine refuses,
    is logged and reported without stopping the rest of the replay.

    Compiles hold ``connections.lock`` for their whole duration, so
    concurrent compiles are serialized and a concurrent ``list()`` never
    observes a half-rebuilt graph.
    """

    def __init__(
        self,
        connections: ConnectionSet,
        binding: EngineRegistry,
        registry: SchemaRegistry,
        *,
        listeners: Iterable[Listener] = (),
        settings: Settings | None = None,
    ) -> None:
        self.connections = connections
        self.binding = binding
        self.registry = registry
        self.settings = settings or get_settings()
        self.last_report: CompileReport | None = None
        self._listeners: list[Listener] = list(listeners)
        self._state = CompilerState.IDLE
        self._in_flight = False
        self._generation = 0

    @property
    def state(self) -> CompilerState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def compile(self) -> CompileReport:
        with self.connections.lock:
            if self._in_flight:
                raise CompileInProgressError("a compile is already in progress")
            self._in_flight = True
            try:
                report = self._rebuild()
                self.last_report = report
                self._notify(report)
            finally:
                self._in_flight = False
        return report

    def _rebuild(self) -> CompileReport:
        self._generation += 1
        wired: list[Connection] = []
        failures: list[ResolutionFailure] = []
        try:
            self._state = CompilerState.TEARING_DOWN
            self.binding.teardown()

            self._state = CompilerState.REPLAYING
            connections = self.connections.list()
            for conn in connections:
                failure = self._replay(conn)
                if failure is None:
                    wired.append(conn)
                else:
                    failures.append(failure)
        finally:
            self._state = CompilerState.IDLE

        if self.settings.log_compile:
            logger.info(
                "compile #%d: %d wired, %d failed",
                self._generation,
                len(wired),
                len(failures),
            )
        return CompileReport(
            generation=self._generation,
            connections=list(connections),
            wired=wired,
            failures=failures,
        )

    def _replay(self, conn: Connection) -> ResolutionFailure | None:
        try:
            source = resolve_reference(
                conn.source, self.binding, self.registry, side="source", connection=conn
            )
            target = resolve_reference(
                conn.target, self.binding, self.registry, side="target", connection=conn
            )
        except ResolutionError as e:
            logger.warning(
                "skipping %s -> %s (%s): %s failed to resolve: %s",
                conn.source.key,
                conn.target.key,
                conn.signal_kind,
                e.side,
                e.args[0],
            )
            return ResolutionFailure(kind=e.kind, side=e.side, message=e.args[0], connection=conn)

        try:
            source.connect(target)
        except Exception as e:
            logger.warning(
                "engine refused %s -> %s (%s) [%s]: %s",
                conn.source.key,
                conn.target.key,
                conn.signal_kind,
                conn.target.shape,
                e,
            )
            return ResolutionFailure(kind="engine_error", message=str(e), connection=conn)
        return None

    def _notify(self, report: CompileReport) -> None:
        for listener in list(self._listeners):
            try:
                listener(report)
            except CompileInProgressError:
                raise
            except Exception:
                logger.exception("compile listener %r failed", listener)
