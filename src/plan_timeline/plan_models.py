from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Literal, TypeVar


Dataset = Literal["planned", "executed"]
"""Which interval a render reads from each node: planner estimate or observed timing."""

DATASETS: tuple[Dataset, ...] = ("planned", "executed")

T = TypeVar("T")


@dataclass(frozen=True)
class TimeInterval:
    """Start/end pair on the plan time axis plus the row count reported for it."""

    start: float
    end: float
    rows: int

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(eq=False)
class PlanNode:
    """
    One plan operator as parsed from an EXPLAIN line.

    Nodes compare by identity: two operators with the same label and timing
    are still distinct entries of the tree.
    """

    label: str
    planned: TimeInterval
    executed: TimeInterval | None = None
    details: list[str] = field(default_factory=list)
    children: list["PlanNode"] = field(default_factory=list)

    def add_detail(self, text: str) -> None:
        self.details.append(text)

    def add_child(self, child: "PlanNode") -> None:
        self.children.append(child)


def interval_for(node: PlanNode, dataset: Dataset) -> TimeInterval | None:
    """Return the node's interval for `dataset`; None if the node has none."""
    if dataset == "executed":
        return node.executed
    if dataset == "planned":
        return node.planned
    raise ValueError(f"unknown dataset '{dataset}', expected one of {list(DATASETS)}")


def walk_depth_first(tree: PlanNode, acc: T, f: Callable[[PlanNode, T], T]) -> T:
    """Fold `f` over the tree, children before their parent, in child order."""
    for child in tree.children:
        acc = walk_depth_first(child, acc, f)
    return f(tree, acc)


def count_nodes(tree: PlanNode) -> int:
    return walk_depth_first(tree, 0, lambda _node, acc: acc + 1)


@dataclass(frozen=True)
class LayoutPoint:
    x: float
    y: float


@dataclass(frozen=True)
class Anchors:
    """Vertical-centre points at the left and right edges of a node's bar."""

    start: LayoutPoint
    end: LayoutPoint


@dataclass(frozen=True)
class BarShape:
    x: float
    y: float
    width: float
    height: float
    label: str


@dataclass(frozen=True)
class ConnectorShape:
    """Cubic curve from a child anchor to its parent's start anchor."""

    points: tuple[LayoutPoint, LayoutPoint, LayoutPoint, LayoutPoint]
    concurrent: bool


@dataclass(frozen=True)
class LabelShape:
    x: float
    y: float
    text: str
    anchor: Literal["start", "end"] = "start"


@dataclass
class RenderPlan:
    """
    Geometry of one timeline render.

    `anchors` is the side table of bar anchor points keyed by node; it belongs
    to this plan only and is rebuilt on every layout.
    """

    dataset: Dataset
    width: float
    height: float
    bars: list[BarShape] = field(default_factory=list)
    connectors: list[ConnectorShape] = field(default_factory=list)
    labels: list[LabelShape] = field(default_factory=list)
    anchors: dict[PlanNode, Anchors] = field(default_factory=dict)
