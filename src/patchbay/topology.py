"""Topology helpers for connection lists."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping

from patchbay.models import Connection, ModuleInstance, SinkRef


def build_audio_feeds(connections: Iterable[Connection]) -> dict[str, set[str]]:
    """Build reverse audio map: {module_id: set of module_ids feeding it audio}.

    Only audio edges are included.  Edges into ``destination`` are keyed by the
    sentinel's ``key``.
    """
    feeds: dict[str, set[str]] = defaultdict(set)
    for conn in connections:
        if conn.signal_kind != "audio" or conn.source.owner_id is None:
            continue
        target = conn.target.key if isinstance(conn.target, SinkRef) else conn.target.owner_id
        if target is not None:
            feeds[target].add(conn.source.owner_id)
    return feeds


def modules_reaching_destination(connections: Iterable[Connection]) -> set[str]:
    """Return module IDs with an audio path to ``destination``.

    Plain breadth-first walk backwards from the sink; feedback loops are
    tolerated and simply visited once.
    """
    feeds = build_audio_feeds(connections)
    reached: set[str] = set()
    queue = sorted(feeds.get(SinkRef().key, set()))
    while queue:
        current = queue.pop(0)
        if current in reached:
            continue
        reached.add(current)
        queue.extend(sorted(feeds.get(current, set()) - reached))
    return reached


def dangling_sources(
    modules: Mapping[str, ModuleInstance],
    connections: Iterable[Connection],
) -> list[str]:
    """Return source keys of audio connections whose chain never reaches the sink.

    Dangling chains compile fine (they are a silent no-op); this only feeds
    the optional warning in :func:`patchbay.validate.validate_patch`.
    """
    conns = list(connections)
    reached = modules_reaching_destination(conns)
    result: list[str] = []
    for conn in conns:
        owner = conn.source.owner_id
        if conn.signal_kind != "audio" or owner is None or owner not in modules:
            continue
        if owner not in reached and conn.source.key not in result:
            result.append(conn.source.key)
    return result
