import textwrap

import pytest

from plan_timeline.config import TimelineConfig
from plan_timeline.layout import EmptyDomain, LayoutError, layout
from plan_timeline.parse_plan import parse_plan
from plan_timeline.plan_models import LayoutPoint

HASH_JOIN = textwrap.dedent(
    """\
    Hash Join  (cost=10.00..50.00 rows=10 width=8) (actual time=0.50..5.00 rows=10 loops=1)
      ->  Seq Scan on a  (cost=0.00..5.00 rows=5 width=4) (actual time=0.50..2.00 rows=5 loops=1)
      ->  Seq Scan on b  (cost=0.00..5.00 rows=5 width=4) (actual time=2.00..4.80 rows=5 loops=1)
    """
)

NEVER_EXECUTED = textwrap.dedent(
    """\
    Nested Loop  (cost=0.00..20.00 rows=1 width=8) (actual time=0.10..2.00 rows=0 loops=1)
      ->  Seq Scan on a  (cost=0.00..10.00 rows=0 width=4) (actual time=0.10..1.00 rows=0 loops=1)
      ->  Seq Scan on b  (cost=0.00..10.00 rows=1 width=4) (never executed)
    """
)

# 1000px chart with 20px margins: 960px for the time domain.
WIDTH = 1000.0


def test_slots_are_post_order_children_above_parent():
    plan = layout(parse_plan(HASH_JOIN), "executed", WIDTH)

    assert [bar.label for bar in plan.bars] == ["Seq Scan on a", "Seq Scan on b", "Hash Join"]
    assert [bar.y for bar in plan.bars] == [2.0, 22.0, 42.0]
    assert all(bar.height == 16.0 for bar in plan.bars)
    assert plan.height == 60.0


def test_bars_use_linear_scale_from_root_end():
    root = parse_plan(HASH_JOIN)
    plan = layout(root, "executed", WIDTH)

    # 5.0 time units over 960px: 192px per unit.
    a, b, join = plan.bars
    assert a.x == pytest.approx(116.0)
    assert a.width == pytest.approx(288.0)
    assert b.x == pytest.approx(404.0)
    assert b.x + b.width == pytest.approx(941.6)
    assert join.x + join.width == pytest.approx(980.0)

    anchors = plan.anchors[root]
    assert anchors.start.x == pytest.approx(116.0)
    assert anchors.start.y == 50.0
    assert anchors.end.x == pytest.approx(980.0)


def test_overlapping_children_are_concurrent_and_nudged():
    root = parse_plan(HASH_JOIN)
    plan = layout(root, "executed", WIDTH)

    assert len(plan.connectors) == 2
    first, second = plan.connectors
    assert first.concurrent and second.concurrent

    # Concurrent edges leave from the child's start anchor.
    assert first.points[0] == plan.anchors[root.children[0]].start
    assert second.points[0] == plan.anchors[root.children[1]].start

    start, ctrl1, ctrl2, end = second.points
    assert ctrl1 == LayoutPoint(start.x + 40.0, start.y)
    assert ctrl2.x == pytest.approx(116.0 - 40.0)
    assert ctrl2.y == 50.0
    assert first.points[3].y == 48.0
    assert end.y == 52.0


def test_child_finished_before_parent_starts_is_sequential():
    root = parse_plan(HASH_JOIN)
    plan = layout(root, "planned", WIDTH)

    # Planned: join starts at 10, both scans end at 5.
    assert [c.concurrent for c in plan.connectors] == [False, False]
    assert plan.connectors[0].points[0] == plan.anchors[root.children[0]].end


def test_label_placement_cases():
    text = textwrap.dedent(
        """\
        Aggregate  (cost=0.00..100.00 rows=1 width=8)
          ->  Sort  (cost=80.00..90.00 rows=1 width=8)
          ->  Index Scan  (cost=0.00..10.00 rows=1 width=8)
        """
    )
    plan = layout(parse_plan(text), "planned", WIDTH)
    labels = {label.text: label for label in plan.labels}

    # 9.6px per unit.
    late = labels["Sort"]
    assert late.anchor == "end"
    assert late.x == pytest.approx(20.0 + 80.0 * 9.6 - 20.0)

    early = labels["Index Scan"]
    assert early.anchor == "start"
    assert early.x == pytest.approx(20.0 + 10.0 * 9.6 + 20.0)

    wide = labels["Aggregate"]
    assert wide.anchor == "start"
    assert wide.x == pytest.approx(40.0)
    assert wide.y == 40.0 + 20.0 - 5.0


def test_zero_duration_bar_keeps_minimum_width():
    text = textwrap.dedent(
        """\
        Limit  (cost=0.00..10.00 rows=1 width=4)
          ->  Result  (cost=3.00..3.00 rows=1 width=4)
        """
    )
    plan = layout(parse_plan(text), "planned", WIDTH)

    assert plan.bars[0].width == 2.0


def test_never_executed_node_is_absent_from_executed_render():
    root = parse_plan(NEVER_EXECUTED)

    executed = layout(root, "executed", WIDTH)
    assert [bar.label for bar in executed.bars] == ["Seq Scan on a", "Nested Loop"]
    assert len(executed.connectors) == 1
    assert len(executed.labels) == 2
    assert executed.height == 40.0
    assert root.children[1] not in executed.anchors

    planned = layout(root, "planned", WIDTH)
    assert len(planned.bars) == 3
    assert len(planned.connectors) == 2
    assert planned.height == 60.0


def test_repeated_layouts_are_identical_and_leave_tree_untouched():
    root = parse_plan(HASH_JOIN)
    before = [dict(vars(node)) for node in [root, *root.children]]

    first = layout(root, "executed", WIDTH)
    layout(root, "planned", WIDTH)
    second = layout(root, "executed", WIDTH)

    assert first == second
    assert first is not second
    assert [dict(vars(node)) for node in [root, *root.children]] == before


def test_config_changes_geometry():
    config = TimelineConfig(bar_height=30.0, margin_x=0.0)
    plan = layout(parse_plan(HASH_JOIN), "executed", WIDTH, config)

    assert plan.height == 90.0
    assert plan.bars[0].x == pytest.approx(100.0)


def test_root_without_executed_timing_is_empty_domain():
    root = parse_plan("Seq Scan on t  (cost=0.00..10.00 rows=100 width=4)")

    with pytest.raises(EmptyDomain):
        layout(root, "executed", WIDTH)


def test_root_with_zero_end_is_empty_domain():
    root = parse_plan("Result  (cost=0.00..0.00 rows=1 width=0)")

    with pytest.raises(LayoutError):
        layout(root, "planned", WIDTH)


def test_unknown_dataset_is_rejected():
    root = parse_plan("Seq Scan on t  (cost=0.00..10.00 rows=100 width=4)")

    with pytest.raises(ValueError):
        layout(root, "estimated", WIDTH)


def test_chart_narrower_than_margins_is_rejected():
    root = parse_plan(HASH_JOIN)

    with pytest.raises(LayoutError, match="no room"):
        layout(root, "planned", 30.0)

    with pytest.raises(LayoutError):
        layout(root, "planned", 40.0)

    plan = layout(root, "planned", 30.0, TimelineConfig(margin_x=0.0))
    assert plan.bars[-1].width == pytest.approx(30.0 * 40.0 / 50.0)
