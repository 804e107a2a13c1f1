from __future__ import annotations

import logging
from typing import Callable, Iterator

from .config import TimelineConfig
from .plan_models import (
    DATASETS,
    Anchors,
    BarShape,
    ConnectorShape,
    Dataset,
    LabelShape,
    LayoutPoint,
    PlanNode,
    RenderPlan,
    TimeInterval,
    interval_for,
)

logger = logging.getLogger(__name__)

BAR_INSET = 2.0  # vertical gap between a bar and its slot edges
LABEL_BASELINE_PAD = 5.0  # label baseline, measured up from the slot bottom
CONNECTOR_BASE_NUDGE = -2.0
WIDE_BAR_FRAC = 0.4
EARLY_END_FRAC = 0.5


class LayoutError(Exception):
    """Raised when a tree cannot be laid out for the requested dataset."""


class EmptyDomain(LayoutError):
    """The root has no usable end time to scale the chart against."""


def layout(
    root: PlanNode,
    dataset: Dataset,
    chart_width: float,
    config: TimelineConfig | None = None,
) -> RenderPlan:
    """
    Compute timeline geometry for `root` using its planned or executed intervals.

    - Every node with an interval for `dataset` gets one bar slot; children are
      placed above their parent, in child order.
    - Nodes lacking the interval are skipped along with their connectors.
    - The tree is only read; all geometry lives in the returned plan.
    """

    if dataset not in DATASETS:
        raise ValueError(f"unknown dataset '{dataset}', expected one of {list(DATASETS)}")
    config = config or TimelineConfig()

    total_time = _total_time(root, dataset)
    plot_width = chart_width - 2 * config.margin_x
    if plot_width <= 0:
        raise LayoutError(
            f"chart width {chart_width:g}px leaves no room to plot inside {config.margin_x:g}px margins"
        )
    scale_x = plot_width / total_time

    def p2x(t: float) -> float:
        return config.margin_x + t * scale_x

    plan = RenderPlan(dataset=dataset, width=chart_width, height=0.0)
    placed = list(_iter_rendered(root, dataset, config.bar_height))

    for node, interval, y in placed:
        plan.bars.append(_place_bar(plan, node, interval, y, p2x, config))

    for node, interval, _y in placed:
        plan.connectors.extend(_route_connectors(plan, node, interval, dataset, config))

    for node, interval, y in placed:
        plan.labels.append(_place_label(plan, node, interval, y, total_time, config))

    plan.height = len(placed) * config.bar_height
    logger.debug(
        "laid out %d bars and %d connectors for %s dataset", len(plan.bars), len(plan.connectors), dataset
    )
    return plan


def _total_time(root: PlanNode, dataset: Dataset) -> float:
    interval = interval_for(root, dataset)
    if interval is None or not interval.end:
        raise EmptyDomain(f"no {dataset} time found on the plan root '{root.label}'")
    return interval.end


def _iter_rendered(
    root: PlanNode, dataset: Dataset, bar_height: float
) -> Iterator[tuple[PlanNode, TimeInterval, float]]:
    """Yield (node, interval, y) post-order, skipping nodes without an interval."""

    slot = 0

    def visit(node: PlanNode) -> Iterator[tuple[PlanNode, TimeInterval, float]]:
        nonlocal slot
        for child in node.children:
            yield from visit(child)
        interval = interval_for(node, dataset)
        if interval is None:  # never executed
            return
        yield node, interval, slot * bar_height
        slot += 1

    yield from visit(root)


def _place_bar(
    plan: RenderPlan,
    node: PlanNode,
    interval: TimeInterval,
    y: float,
    p2x: Callable[[float], float],
    config: TimelineConfig,
) -> BarShape:
    bar_left = p2x(interval.start)
    bar_right = p2x(interval.end)
    if bar_right < bar_left + config.min_bar_width:
        bar_right = bar_left + config.min_bar_width

    mid_y = y + 0.5 * config.bar_height
    plan.anchors[node] = Anchors(start=LayoutPoint(bar_left, mid_y), end=LayoutPoint(bar_right, mid_y))
    return BarShape(
        x=bar_left,
        y=y + BAR_INSET,
        width=bar_right - bar_left,
        height=config.bar_height - 2 * BAR_INSET,
        label=node.label,
    )


def _route_connectors(
    plan: RenderPlan,
    node: PlanNode,
    interval: TimeInterval,
    dataset: Dataset,
    config: TimelineConfig,
) -> list[ConnectorShape]:
    """Curves from each rendered child into the parent's start anchor."""

    end_point = plan.anchors[node].start
    connectors: list[ConnectorShape] = []
    for idx, child in enumerate(node.children):
        child_interval = interval_for(child, dataset)
        if child_interval is None:
            continue

        # Child still running when the parent starts: pipelined with it.
        concurrent = interval.start < child_interval.end
        child_anchors = plan.anchors[child]
        start_point = child_anchors.start if concurrent else child_anchors.end

        connectors.append(
            ConnectorShape(
                points=(
                    start_point,
                    LayoutPoint(start_point.x + config.curve_offset, start_point.y),
                    LayoutPoint(end_point.x - config.curve_offset, end_point.y),
                    LayoutPoint(end_point.x, end_point.y + idx * config.child_nudge + CONNECTOR_BASE_NUDGE),
                ),
                concurrent=concurrent,
            )
        )
    return connectors


def _place_label(
    plan: RenderPlan,
    node: PlanNode,
    interval: TimeInterval,
    y: float,
    total_time: float,
    config: TimelineConfig,
) -> LabelShape:
    """Put the label on, after, or before the bar, whichever keeps it inside the chart."""

    anchors = plan.anchors[node]
    label_y = y + config.bar_height - LABEL_BASELINE_PAD

    if interval.duration > WIDE_BAR_FRAC * total_time:
        return LabelShape(anchors.start.x + config.label_offset, label_y, node.label)
    if interval.end < EARLY_END_FRAC * total_time:
        return LabelShape(anchors.end.x + config.label_offset, label_y, node.label)
    return LabelShape(anchors.start.x - config.label_offset, label_y, node.label, anchor="end")
