"""Patch session and interaction controller."""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from patchbay.compile import CompileReport, GraphCompiler
from patchbay.config import Settings, get_settings
from patchbay.connections import ConnectionRejected, ConnectionSet, RefLike
from patchbay.engine import EngineFactory, EngineRegistry, MemoryEngine
from patchbay.models import (
    AddressError,
    Connection,
    ConnectionDeclaration,
    ModuleDeclaration,
    ModuleInstance,
    ParamValue,
    PatchDocument,
    check_module_id,
)
from patchbay.schema import SchemaRegistry, builtin_registry
from patchbay.validate import Rejection

logger = logging.getLogger(__name__)


class Patch:
    """A running patch: module table, connection set, engine binding and compiler.

    Every topology change (module added or removed, connection added or
    removed) is followed by a synchronous full compile.
    """

    def __init__(
        self,
        name: str = "patch",
        *,
        schemas: SchemaRegistry | None = None,
        engine: EngineFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.name = name
        self.settings = settings or get_settings()
        self.schemas = schemas or builtin_registry(self.settings.mixer_channels)
        self.engine = engine if engine is not None else MemoryEngine()
        self.modules: dict[str, ModuleInstance] = {}
        self.connections = ConnectionSet(self.modules, self.schemas)
        self.binding = EngineRegistry(self.engine.destination)
        self.compiler = GraphCompiler(
            self.connections, self.binding, self.schemas, settings=self.settings
        )

    # -- modules -------------------------------------------------------------

    def _next_id(self, kind: str) -> str:
        n = 1
        while f"{kind}-{n}" in self.modules:
            n += 1
        return f"{kind}-{n}"

    def add_module(
        self, kind: str, module_id: str | None = None, **params: ParamValue
    ) -> ModuleInstance:
        """Instantiate a module of *kind*, bind it to the engine and recompile.

        Raises :class:`~patchbay.schema.UnknownModuleKindError` for an
        unregistered kind and ``ValueError`` for a taken or malformed ID, an
        unknown parameter or an out-of-range value.
        """
        schema = self.schemas.get(kind)
        module_id = check_module_id(module_id or self._next_id(kind))
        if module_id in self.modules:
            raise ValueError(f"Module ID '{module_id}' is already in use")
        unknown = sorted(p for p in params if schema.param(p) is None)
        if unknown:
            raise ValueError(f"Module kind '{kind}' has no parameter(s): {', '.join(unknown)}")
        params = {name: schema.param(name).check(value) for name, value in params.items()}

        instance = ModuleInstance(id=module_id, kind=kind, params={**schema.defaults(), **params})
        node = self.engine.create_node(instance, schema)
        with self.connections.lock:
            self.modules[module_id] = instance
            self.binding.register(instance, node)
        logger.info("added module %s (%s)", module_id, kind)
        self.compile()
        return instance

    def remove_module(self, module_id: str) -> list[Connection]:
        """Remove a module and every connection touching it, then recompile.

        Returns the purged connections.  Unknown IDs raise ``KeyError``.
        """
        if module_id not in self.modules:
            raise KeyError(module_id)
        with self.connections.lock:
            purged = self.connections.remove_module(module_id)
            del self.modules[module_id]
            self.binding.unregister(module_id)
            release = getattr(self.engine, "release", None)
            if release is not None:
                release(module_id)
        logger.info("removed module %s (%d connections purged)", module_id, len(purged))
        self.compile()
        return purged

    def set_param(self, module_id: str, name: str, value: ParamValue) -> None:
        """Write a parameter value.  Topology is untouched, so no recompile."""
        instance = self.modules[module_id]
        spec = self.schemas.get(instance.kind).param(name)
        if spec is None:
            raise ValueError(f"Module '{module_id}' ({instance.kind}) has no parameter '{name}'")
        value = spec.check(value)
        instance.params[name] = value
        setter = getattr(self.binding.get(module_id).node, "set", None)
        if setter is not None:
            setter(name, value)

    # -- connections ---------------------------------------------------------

    def connect(self, source: RefLike, target: RefLike) -> Connection:
        """Add a connection and recompile.  Raises :class:`ConnectionRejected`."""
        conn = self.connections.add(source, target)
        self.compile()
        return conn

    def disconnect(self, source: RefLike, target: RefLike) -> bool:
        removed = self.connections.remove(source, target)
        if removed:
            self.compile()
        return removed

    def compile(self) -> CompileReport:
        return self.compiler.compile()

    def subscribe(self, listener: Callable[[CompileReport], None]) -> Callable[[], None]:
        return self.compiler.subscribe(listener)

    # -- documents -----------------------------------------------------------

    def snapshot(self) -> PatchDocument:
        """Module declarations plus the ordered connection list."""
        with self.connections.lock:
            return PatchDocument(
                name=self.name,
                modules=[
                    ModuleDeclaration(id=m.id, kind=m.kind, params=dict(m.params))
                    for m in self.modules.values()
                ],
                connections=[
                    ConnectionDeclaration(source=c.source.key, target=c.target.key)
                    for c in self.connections.list()
                ],
            )

    @classmethod
    def from_document(
        cls,
        doc: PatchDocument,
        *,
        schemas: SchemaRegistry | None = None,
        engine: EngineFactory | None = None,
        settings: Settings | None = None,
    ) -> tuple[Patch, list[Rejection]]:
        """Build a patch from a document.

        Declared connections that fail validation are skipped and returned as
        rejections; unknown module kinds propagate.
        """
        patch = cls(doc.name, schemas=schemas, engine=engine, settings=settings)
        controller = PatchController(patch)
        for decl in doc.modules:
            patch.add_module(decl.kind, decl.id, **decl.params)
        rejections: list[Rejection] = []
        for decl in doc.connections:
            proposal = controller.propose_connection(decl.source, decl.target)
            if proposal.rejection is not None:
                rejections.append(proposal.rejection)
        return patch, rejections


class Proposal(NamedTuple):
    accepted: bool
    connection: Connection | None = None
    rejection: Rejection | None = None


class PatchController:
    """Turns user gestures into validated add/remove calls on a patch.

    Rejections are returned, never raised, so the UI can show the failed
    rule next to the cable.
    """

    def __init__(self, patch: Patch) -> None:
        self.patch = patch

    def propose_connection(self, source: RefLike, target: RefLike) -> Proposal:
        try:
            conn = self.patch.connect(source, target)
        except ConnectionRejected as e:
            return Proposal(False, rejection=e.rejection)
        except AddressError as e:
            return Proposal(
                False,
                rejection=Rejection(
                    "address",
                    str(e),
                    source=source if isinstance(source, str) else source.key,
                    target=target if isinstance(target, str) else target.key,
                ),
            )
        return Proposal(True, connection=conn)

    def remove_connection(self, source: RefLike, target: RefLike) -> bool:
        try:
            return self.patch.disconnect(source, target)
        except AddressError:
            return False
