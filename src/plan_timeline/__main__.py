from __future__ import annotations

import argparse
import logging
import sys
import webbrowser
from importlib import metadata
from pathlib import Path

import yaml

from .config import ConfigValidationError, TimelineConfig, load_config, with_overrides
from .layout import LayoutError
from .parse_plan import ParseError, load_plan, parse_plan
from .plan_models import DATASETS, PlanNode, count_nodes
from .render_rows import format_outline, to_render_rows
from .render_timeline import SvgTimelineSurface, render_timeline

logger = logging.getLogger(__name__)


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number '{value}'") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got '{value}'")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plan-timeline",
        description="Query plan timeline renderer",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("plan", help="Path to an EXPLAIN text dump, or '-' for stdin")
    parser.add_argument("--out", default="output/plan_timeline.svg", help="Output SVG path")
    parser.add_argument("--dataset", choices=DATASETS, default="planned", help="Which timing to chart")
    parser.add_argument("--config", help="Path to a timeline style YAML file")
    parser.add_argument("--width", type=_positive_float, help="Chart width in pixels; overrides the config")
    parser.add_argument(
        "--outline",
        action="store_true",
        help="Print the parsed plan tree instead of rendering a chart",
    )
    parser.add_argument(
        "--view",
        dest="view",
        action="store_true",
        default=False,
        help="Best-effort open the output file after rendering",
    )
    parser.add_argument(
        "--no-view",
        dest="view",
        action="store_false",
        help="Do not open the output file after rendering",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_tool_version()}")
    return parser


def _tool_version() -> str:
    try:
        return metadata.version("plan-timeline")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _read_plan(source: str) -> PlanNode:
    if source == "-":
        return parse_plan(sys.stdin.read())
    return load_plan(source)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config) if args.config else TimelineConfig()
        config = with_overrides(config, width=args.width)
    except (yaml.YAMLError, ConfigValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError:
        print(f"Error: config file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        root = _read_plan(args.plan)
    except ParseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError:
        print(f"Error: plan file not found: {args.plan}", file=sys.stderr)
        return 1
    except Exception as exc:  # Unexpected
        print(f"Unexpected error while parsing plan: {exc}", file=sys.stderr)
        return 1
    logger.info("parsed %d plan nodes from %s", count_nodes(root), args.plan)

    if args.outline:
        print(format_outline(to_render_rows(root, args.dataset)))
        return 0

    surface = SvgTimelineSurface(config.width)
    try:
        render_timeline(root, surface, args.dataset, config)
        surface.save(args.out)
    except LayoutError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"Unexpected error while rendering: {exc}", file=sys.stderr)
        return 1
    logger.info("wrote %s", args.out)

    if args.view:
        try:
            webbrowser.open(Path(args.out).resolve().as_uri())
        except webbrowser.Error:
            logger.warning("could not open %s in a browser", args.out)

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
