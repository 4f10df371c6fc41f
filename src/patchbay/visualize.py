"""Graphviz DOT visualization for patches."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from patchbay.compile import CompileReport
from patchbay.models import DESTINATION, Connection, ParamRef, SinkRef

if TYPE_CHECKING:
    from patchbay.controller import Patch

# Cable colours by signal kind.
SIGNAL_COLORS: dict[str, str] = {
    "audio": "#ffcc00",
    "cv": "#8866ff",
    "gate": "#0066ff",
}

_KIND_FILL: dict[str, str] = {
    "oscillator": "#e2d5f1",
    "lfo": "#e2d5f1",
    "sequencer": "#e2d5f1",
    "filter": "#fde0c8",
    "envelope": "#fde0c8",
    "reverb": "#fff3cd",
    "equalizer": "#fff3cd",
    "mixer": "#cce5ff",
}


def cables(source: CompileReport | Iterable[Connection]) -> list[dict[str, str]]:
    """Ordered ``{source, target, signal_kind}`` records for cable renderers."""
    if isinstance(source, CompileReport):
        return source.cables()
    return [
        {"source": c.source.key, "target": c.target.key, "signal_kind": c.signal_kind}
        for c in source
    ]


def _edge_head(conn: Connection) -> tuple[str, str]:
    """Return (node name, edge label) for the target end of a connection."""
    target = conn.target
    if isinstance(target, SinkRef):
        return DESTINATION, ""
    if isinstance(target, ParamRef):
        return target.module_id, target.param
    label = target.port if target.shape == "port" else f"{target.port}[{target.slot}]"
    return target.module_id, label


def patch_to_dot(patch: Patch) -> str:
    """Convert a patch to a Graphviz DOT string."""
    lines: list[str] = []
    w = lines.append

    w(f'digraph "{patch.name}" {{')
    w("    rankdir=LR;")
    w('    node [fontname="Helvetica" fontsize=10];')
    w("")

    for module in patch.modules.values():
        schema = patch.schemas.get(module.kind)
        color = _KIND_FILL.get(module.kind, "#ffffff")
        w(
            f'    "{module.id}" [shape=box style="rounded,filled" fillcolor="{color}"'
            f' label="{module.id}\\n{schema.engine_type}"];'
        )

    connections = patch.connections.list()
    if any(isinstance(c.target, SinkRef) for c in connections):
        w(
            f'    "{DESTINATION}" [shape=doublecircle style=filled'
            f' fillcolor="#f8d7da" label="{DESTINATION}"];'
        )

    w("")

    for conn in connections:
        head, label = _edge_head(conn)
        tail = conn.source.owner_id
        color = SIGNAL_COLORS[conn.signal_kind]
        attrs = [f'color="{color}"']
        if label:
            attrs.append(f'label="{label}"')
        if isinstance(conn.target, ParamRef):
            attrs.append("style=dashed")
        w(f'    "{tail}" -> "{head}" [{" ".join(attrs)}];')

    w("}")
    return "\n".join(lines) + "\n"


def patch_to_dot_file(patch: Patch, output_dir: str | Path) -> Path:
    """Write a DOT file for the patch to output_dir/{name}.dot.

    If the ``dot`` binary is on PATH, also renders a PDF to
    ``output_dir/{name}.pdf``.

    Returns the path to the written ``.dot`` file.
    """
    dot_src = patch_to_dot(patch)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    dot_path = out / f"{patch.name}.dot"
    dot_path.write_text(dot_src)

    dot_bin = shutil.which("dot")
    if dot_bin is not None:
        pdf_path = out / f"{patch.name}.pdf"
        subprocess.run(
            [dot_bin, "-Tpdf", str(dot_path), "-o", str(pdf_path)],
            check=True,
        )

    return dot_path
