from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .plan_models import Dataset, PlanNode, TimeInterval, interval_for


@dataclass
class OutlineRow:
    """
    Flattened view of one plan node used by text listings.

    Only what a listing prints is kept: positional order, nesting level,
    label, the interval of the chosen dataset, and the detail lines.
    """

    order: int
    indent: int
    label: str
    interval: TimeInterval | None
    details: list[str] = field(default_factory=list)


def to_render_rows(root: PlanNode, dataset: Dataset = "planned") -> list[OutlineRow]:
    """
    Convert a parsed plan into a flat list of rows with indentation.

    Parents precede their children, children keep source order, and every
    nesting level increases indent by 1.
    """

    rows: List[OutlineRow] = []
    _append_node(root, rows, indent=0, dataset=dataset)
    return rows


def _append_node(node: PlanNode, rows: List[OutlineRow], indent: int, dataset: Dataset) -> None:
    rows.append(
        OutlineRow(
            order=len(rows),
            indent=indent,
            label=node.label,
            interval=interval_for(node, dataset),
            details=list(node.details),
        )
    )
    for child in node.children:
        _append_node(child, rows, indent + 1, dataset)


def format_outline(rows: list[OutlineRow]) -> str:
    """Render rows as an indented text listing, one node per line plus its details."""

    lines: list[str] = []
    for row in rows:
        pad = "  " * row.indent
        if row.interval is None:
            timing = "never executed"
        else:
            timing = f"{row.interval.start:g}..{row.interval.end:g} rows={row.interval.rows}"
        lines.append(f"{pad}{row.label}  [{timing}]")
        for detail in row.details:
            lines.append(f"{pad}    {detail}")
    return "\n".join(lines)
