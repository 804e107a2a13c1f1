from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol, Sequence

import matplotlib

matplotlib.use("Agg")  # ensure headless, deterministic output
import matplotlib.path as mpath
import matplotlib.pyplot as plt
from matplotlib.patches import PathPatch, Rectangle

from .config import TimelineConfig
from .layout import layout
from .plan_models import Dataset, LayoutPoint, PlanNode, RenderPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Style:
    """Drawing attributes passed with every surface call; None means 'not drawn'."""

    fill: str | None = None
    stroke: str | None = None
    stroke_width: float = 1.0
    font_size: float = 10.0
    text_anchor: Literal["start", "end"] = "start"


class DrawSurface(Protocol):
    """Pixel-space drawing target, origin top-left, y growing downward."""

    @property
    def width(self) -> float: ...

    @property
    def height(self) -> float: ...

    def resize(self, height: float) -> None: ...

    def draw_rect(self, x: float, y: float, w: float, h: float, style: Style) -> None: ...

    def draw_cubic_path(self, points: Sequence[LayoutPoint], style: Style) -> None: ...

    def draw_text(self, x: float, y: float, text: str, style: Style) -> None: ...


def render_timeline(
    root: PlanNode,
    surface: DrawSurface,
    dataset: Dataset = "planned",
    config: TimelineConfig | None = None,
) -> RenderPlan:
    """
    Lay out `root` against the surface width and draw it.

    Bars go first, then connectors, then labels so text stays on top. The
    surface is resized to the plan height before anything is drawn.
    """

    config = config or TimelineConfig()
    plan = layout(root, dataset, surface.width, config)
    surface.resize(plan.height)

    colors = config.colors
    bar_style = Style(fill=colors.bar_fill, stroke=colors.bar_stroke, stroke_width=1.0)
    concurrent_style = Style(stroke=colors.concurrent, stroke_width=config.connector_width)
    sequential_style = Style(stroke=colors.sequential, stroke_width=config.connector_width)

    for bar in plan.bars:
        surface.draw_rect(bar.x, bar.y, bar.width, bar.height, bar_style)

    for connector in plan.connectors:
        style = concurrent_style if connector.concurrent else sequential_style
        surface.draw_cubic_path(connector.points, style)

    for label in plan.labels:
        surface.draw_text(
            label.x,
            label.y,
            label.text,
            Style(fill=colors.text, font_size=config.font_size, text_anchor=label.anchor),
        )

    logger.info("rendered %d %s nodes", len(plan.bars), dataset)
    return plan


class SvgTimelineSurface:
    """DrawSurface backed by a matplotlib figure whose data units are pixels."""

    def __init__(self, width: float, dpi: float = 100.0) -> None:
        if width <= 0:
            raise ValueError("width must be positive")
        self._width = float(width)
        self._height = 0.0
        self._dpi = dpi
        self._fig = None
        self._ax = None

    @property
    def width(self) -> float:
        return self._width

    @property
    def height(self) -> float:
        return self._height

    def resize(self, height: float) -> None:
        if self._fig is not None:
            plt.close(self._fig)
        self._height = float(height)
        # A zero-height figure cannot be saved; keep at least one pixel.
        fig_height = max(self._height, 1.0)
        self._fig = plt.figure(figsize=(self._width / self._dpi, fig_height / self._dpi), dpi=self._dpi)
        self._ax = self._fig.add_axes((0, 0, 1, 1))
        self._ax.set_xlim(0, self._width)
        self._ax.set_ylim(fig_height, 0)
        self._ax.axis("off")

    def draw_rect(self, x: float, y: float, w: float, h: float, style: Style) -> None:
        self._axes().add_patch(
            Rectangle(
                (x, y),
                w,
                h,
                facecolor=style.fill or "none",
                edgecolor=style.stroke or "none",
                linewidth=style.stroke_width,
            )
        )

    def draw_cubic_path(self, points: Sequence[LayoutPoint], style: Style) -> None:
        if len(points) != 4:
            raise ValueError(f"cubic path needs 4 points, got {len(points)}")
        codes = [mpath.Path.MOVETO] + [mpath.Path.CURVE4] * 3
        path = mpath.Path([(p.x, p.y) for p in points], codes)
        self._axes().add_patch(
            PathPatch(
                path,
                facecolor=style.fill or "none",
                edgecolor=style.stroke or "none",
                linewidth=style.stroke_width,
            )
        )

    def draw_text(self, x: float, y: float, text: str, style: Style) -> None:
        self._axes().text(
            x,
            y,
            text,
            ha="right" if style.text_anchor == "end" else "left",
            va="baseline",
            fontsize=style.font_size,
            color=style.fill or "black",
            clip_on=False,
        )

    def save(self, out_path: str) -> None:
        """Write the figure as SVG to `out_path` and release it."""
        fig = self._fig
        if fig is None:
            raise RuntimeError("nothing drawn; call resize() first")
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, format="svg")
        plt.close(fig)
        self._fig = self._ax = None

    def _axes(self):
        if self._ax is None:
            raise RuntimeError("surface has no size yet; call resize() first")
        return self._ax
