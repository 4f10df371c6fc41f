"""The connection set -- ordered, validated, single source of truth for topology."""

from __future__ import annotations

import logging
import threading
from typing import Iterator, Mapping, Union

from patchbay.models import (
    Connection,
    ModuleInstance,
    ParamRef,
    PortRef,
    SinkRef,
    SlotRef,
    as_reference,
)
from patchbay.schema import SchemaRegistry
from patchbay.validate import Rejection, check_rules, source_signal

logger = logging.getLogger(__name__)

RefLike = Union[str, PortRef, SlotRef, ParamRef, SinkRef]


class ConnectionRejected(ValueError):
    """Raised by :meth:`ConnectionSet.add` when a validation rule fails."""

    def __init__(self, rejection: Rejection) -> None:
        super().__init__(str(rejection))
        self.rejection = rejection

    @property
    def rule(self) -> str:
        return self.rejection.rule


class ConnectionSet:
    """Mutable, insertion-ordered collection of validated connections.

    Only :meth:`add` and :meth:`remove` mutate it.  ``lock`` is the single
    mutex shared with the graph compiler: a reader calling :meth:`list`
    while a compile is running sees the list from before or after the
    mutation, never a partial one.
    """

    def __init__(self, modules: Mapping[str, ModuleInstance], registry: SchemaRegistry) -> None:
        self.modules = modules
        self.registry = registry
        self.lock = threading.RLock()
        self._connections: list[Connection] = []

    def reference(self, ref: RefLike) -> PortRef | SlotRef | ParamRef | SinkRef:
        """Turn an address string into a reference using this set's module table."""
        return as_reference(ref, self.modules, self.registry)

    def add(self, source: RefLike, target: RefLike) -> Connection:
        """Validate and append a connection.

        Raises :class:`ConnectionRejected` naming the failed rule; the set is
        left untouched in that case.
        """
        src = self.reference(source)
        tgt = self.reference(target)
        with self.lock:
            rejection = check_rules(src, tgt, self.modules, self.registry, self._connections)
            if rejection is not None:
                logger.debug("rejected %s -> %s: %s", src.key, tgt.key, rejection)
                raise ConnectionRejected(rejection)
            signal_kind = source_signal(src, self.modules, self.registry)
            if signal_kind is None:
                raise ConnectionRejected(
                    Rejection(
                        "signal",
                        f"Cannot determine the signal kind of '{src.key}'",
                        source=src.key,
                        target=tgt.key,
                    )
                )
            conn = Connection(source=src, target=tgt, signal_kind=signal_kind)
            self._connections.append(conn)
        logger.debug("added %s", conn)
        return conn

    def remove(self, source: RefLike, target: RefLike) -> bool:
        """Remove the first structurally equal connection.

        Returns False (no error) when there is nothing to remove.
        """
        key = (self.reference(source).key, self.reference(target).key)
        with self.lock:
            for i, conn in enumerate(self._connections):
                if conn.key == key:
                    del self._connections[i]
                    logger.debug("removed %s", conn)
                    return True
        logger.debug("remove %s -> %s: not present", key[0], key[1])
        return False

    def remove_module(self, module_id: str) -> list[Connection]:
        """Remove every connection whose source or target belongs to *module_id*."""
        with self.lock:
            doomed = [
                c
                for c in self._connections
                if module_id in (c.source.owner_id, c.target.owner_id)
            ]
            for conn in doomed:
                self.remove(conn.source, conn.target)
        return doomed

    def list(self) -> tuple[Connection, ...]:
        with self.lock:
            return tuple(self._connections)

    def __len__(self) -> int:
        with self.lock:
            return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.list())

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, Connection):
            return False
        return any(c.key == item.key for c in self.list())
