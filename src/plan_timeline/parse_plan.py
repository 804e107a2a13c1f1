from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .plan_models import PlanNode, TimeInterval

logger = logging.getLogger(__name__)

_FLOAT = r"\d+(?:\.\d+)?"

# [<indent>-> ]<label> (cost=...
_NODE_RE = re.compile(r"^(\s+->\s+)?(\S.*?)\s*(\(cost=.*)$")
_TIMING_RE = re.compile(
    rf"\(cost=(?P<cost_start>{_FLOAT})\.\.(?P<cost_end>{_FLOAT}) rows=(?P<rows>\d+) width=(?P<width>\d+)\)"
    rf"(?:\s+\(actual time=(?P<act_start>{_FLOAT})\.\.(?P<act_end>{_FLOAT})"
    r" rows=(?P<act_rows>\d+) loops=(?P<loops>\d+)\))?"
)


class ParseError(Exception):
    """Raised when a plan text cannot be turned into a node tree."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class NoNodeRecognized(ParseError):
    """The text has no line that looks like a plan operator."""


class BadTiming(ParseError):
    """The metrics parenthetical of an operator line could not be decoded."""

    def __init__(self, raw: str, line: int | None = None) -> None:
        self.raw = raw
        super().__init__(f"bad timing string: {raw}", line)


class StackUnderflow(ParseError):
    """A detail line came before any operator, or the ancestry stack ran dry."""


class NoRoot(ParseError):
    """Parsing finished without opening any operator."""


@dataclass(frozen=True)
class StackEntry:
    node: PlanNode
    depth: int


class ParseStack:
    """Open ancestor chain, shallowest first; only push and pop change it."""

    def __init__(self) -> None:
        self._entries: list[StackEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def empty(self) -> bool:
        return not self._entries

    def push(self, entry: StackEntry) -> None:
        self._entries.append(entry)

    def pop(self) -> StackEntry:
        if self.empty():
            raise StackUnderflow("can't pop empty stack")
        return self._entries.pop()

    def top(self) -> StackEntry:
        if self.empty():
            raise StackUnderflow("empty stack has no top")
        return self._entries[-1]

    def bottom(self) -> StackEntry:
        if self.empty():
            raise NoRoot("no plan node found")
        return self._entries[0]


class PlanParser:
    """
    Line-by-line EXPLAIN text parser.

    Feed lines with `add_line`, then read the tree from `root()`. Nesting is
    rebuilt from the length of the `->` marker: an operator becomes the child
    of the nearest open operator with a strictly shorter marker.
    """

    def __init__(self) -> None:
        self.stack = ParseStack()
        self.nline = 0

    def add_line(self, line: str) -> None:
        self.nline += 1
        line = _strip_quotes(line)

        match = _NODE_RE.match(line)
        if match:
            self._add_node(match)
        elif line.strip():
            self._add_detail(line)

    def root(self) -> PlanNode:
        return self.stack.bottom().node

    def _add_node(self, match: re.Match[str]) -> None:
        depth = len(match.group(1) or "")
        planned, executed = self._parse_timing(match.group(3))
        node = PlanNode(label=match.group(2), planned=planned, executed=executed)

        while not self.stack.empty() and self.stack.top().depth >= depth:
            self.stack.pop()
        if not self.stack.empty():
            self.stack.top().node.add_child(node)
        self.stack.push(StackEntry(node, depth))
        logger.debug("line %d: node %r at depth %d", self.nline, node.label, depth)

    def _parse_timing(self, timing: str) -> tuple[TimeInterval, TimeInterval | None]:
        match = _TIMING_RE.match(timing)
        if not match:
            raise BadTiming(timing, self.nline)
        planned = TimeInterval(
            start=float(match["cost_start"]),
            end=float(match["cost_end"]),
            rows=int(match["rows"]),
        )
        if match["act_start"] is None:
            return planned, None
        return planned, TimeInterval(
            start=float(match["act_start"]),
            end=float(match["act_end"]),
            rows=int(match["act_rows"]),
        )

    def _add_detail(self, line: str) -> None:
        if self.stack.empty():
            raise StackUnderflow("detail line before any plan node", self.nline)
        self.stack.top().node.add_detail(line.lstrip())


def parse_plan(text: str) -> PlanNode:
    """Parse a complete EXPLAIN text and return the root operator."""

    lines = text.split("\n")
    if not any(_NODE_RE.match(_strip_quotes(line)) for line in lines):
        raise NoNodeRecognized("no plan node found in text")

    parser = PlanParser()
    for line in lines:
        parser.add_line(line.rstrip("\r"))
    root = parser.root()
    logger.debug("parsed %d lines", parser.nline)
    return root


def load_plan(path: str) -> PlanNode:
    """Read and parse an EXPLAIN text file."""

    with open(path, "r", encoding="utf-8") as fh:
        return parse_plan(fh.read())


def _strip_quotes(line: str) -> str:
    # pgAdmin exports wrap every line in double quotes.
    if line.startswith('"'):
        line = line.strip()
        if len(line) > 1 and line.endswith('"'):
            line = line[1:-1]
    return line
