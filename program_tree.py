from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

REPEAT_MIN = 1
REPEAT_MAX = 20
DEFAULT_REPEAT_COUNT = 2
FLATTEN_LIMIT = 500  # Cap on unrolled commands for pathological nesting

logger = logging.getLogger(__name__)


class EditError(Exception):
    """Base class for refused program edits."""

    pass


class RejectedEdit(EditError):
    """The edit breaks a nesting or mode rule; the tree is unchanged."""

    pass


class InvalidReference(EditError):
    """The edit names a block id that is not in the program."""

    pass


class Command(Enum):
    FORWARD = "forward"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"


class Predicate(Enum):
    OBSTACLE_AHEAD = "obstacle_ahead"
    BOUNDARY_AHEAD = "boundary_ahead"
    AT_GOAL = "at_goal"


class Mode(Enum):
    BASIC = "basic"
    CONDITIONS = "conditions"
    LOOP = "loop"


class BlockKind(Enum):
    """Everything the palette can place into a program."""

    FORWARD = "forward"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"
    REPEAT = "repeat"
    UNTIL_OBSTACLE = "until_obstacle"
    UNTIL_BOUNDARY = "until_boundary"
    UNTIL_GOAL = "until_goal"

    @property
    def is_conditional(self) -> bool:
        return self in UNTIL_PREDICATES


UNTIL_PREDICATES = {
    BlockKind.UNTIL_OBSTACLE: Predicate.OBSTACLE_AHEAD,
    BlockKind.UNTIL_BOUNDARY: Predicate.BOUNDARY_AHEAD,
    BlockKind.UNTIL_GOAL: Predicate.AT_GOAL,
}

PREDICATE_LABELS = {
    Predicate.OBSTACLE_AHEAD: "Until Obstacle Ahead",
    Predicate.BOUNDARY_AHEAD: "Until At Boundary",
    Predicate.AT_GOAL: "Until At Goal",
}

COMMAND_LABELS = {
    Command.FORWARD: "Go Forward",
    Command.TURN_LEFT: "Turn Left",
    Command.TURN_RIGHT: "Turn Right",
}


def mode_allows(mode: Mode, kind: BlockKind) -> bool:
    """Repeat blocks belong to loop mode, conditional blocks to conditions mode."""
    if kind is BlockKind.REPEAT:
        return mode is Mode.LOOP
    if kind.is_conditional:
        return mode is Mode.CONDITIONS
    return True


# ---------------------------------------------------------------------- #
# Nodes
# ---------------------------------------------------------------------- #


@dataclass
class AtomicNode:
    id: int
    command: Command

    def describe(self) -> str:
        return COMMAND_LABELS[self.command]


@dataclass
class RepeatNode:
    id: int
    count: int = DEFAULT_REPEAT_COUNT
    children: List["Node"] = field(default_factory=list)

    def describe(self) -> str:
        return f"Repeat {self.count} times"


@dataclass
class ConditionalNode:
    """Runs its children again and again until the predicate holds."""

    id: int
    predicate: Predicate
    children: List["Node"] = field(default_factory=list)

    def describe(self) -> str:
        return PREDICATE_LABELS[self.predicate]


Node = Union[AtomicNode, RepeatNode, ConditionalNode]


def clamp_repeat_count(value: int) -> int:
    return max(REPEAT_MIN, min(REPEAT_MAX, int(value)))


class Unrolled:
    """
    The atomic commands a program expands to, computed lazily.

    Repeats are expanded `count` times and conditional bodies are inlined
    once, since their real iteration count depends on the board. Iterating
    again starts over from the first command.
    """

    def __init__(self, roots: List[Node], limit: int = FLATTEN_LIMIT) -> None:
        self.roots = roots
        self.limit = limit

    def __iter__(self) -> Iterator[Command]:
        emitted = 0
        for command in self._walk(self.roots):
            if emitted >= self.limit:
                return
            emitted += 1
            yield command

    def _walk(self, nodes: List[Node]) -> Iterator[Command]:
        for node in nodes:
            if isinstance(node, RepeatNode):
                for _ in range(clamp_repeat_count(node.count)):
                    yield from self._walk(node.children)
            elif isinstance(node, ConditionalNode):
                yield from self._walk(node.children)
            else:
                yield node.command


class ProgramTree:
    """
    The player's program: an ordered forest of blocks.

    Nodes live in `roots` / their parent's `children` as usual; `_nodes`
    and `_parents` index every live node by id so lookups do not need a
    tree walk. Every mutation keeps the indexes in step with the tree.
    """

    def __init__(self) -> None:
        self.roots: List[Node] = []
        self._nodes: Dict[int, Node] = {}
        self._parents: Dict[int, Optional[int]] = {}
        self._next_id = 1

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.roots)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    def is_empty(self) -> bool:
        return not self.roots

    def find(self, node_id: int) -> Optional[Node]:
        return self._nodes.get(node_id)

    def parent_of(self, node_id: int) -> Optional[Node]:
        parent_id = self._parents.get(node_id)
        return None if parent_id is None else self._nodes[parent_id]

    def ancestors(self, node_id: int) -> Iterator[Node]:
        """Yield `node_id` itself, then each enclosing block up to the root."""
        current: Optional[int] = node_id
        while current is not None:
            yield self._nodes[current]
            current = self._parents[current]

    def walk(self) -> Iterator[Node]:
        """Depth-first, pre-order over every node."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            if not isinstance(node, AtomicNode):
                stack.extend(reversed(node.children))

    def flatten(self, limit: int = FLATTEN_LIMIT) -> Unrolled:
        return Unrolled(self.roots, limit)

    def outline(self) -> List[Tuple[int, Node]]:
        """(depth, node) for every block in display order."""
        rows: List[Tuple[int, Node]] = []

        def visit(nodes: List[Node], depth: int) -> None:
            for node in nodes:
                rows.append((depth, node))
                if not isinstance(node, AtomicNode):
                    visit(node.children, depth + 1)

        visit(self.roots, 0)
        return rows

    def describe(self, indent: str = "    ") -> List[str]:
        """One line per block, children indented under their parent."""
        return [f"{indent * depth}[{node.id}] {node.describe()}" for depth, node in self.outline()]

    # ------------------------------------------------------------------ #
    # Edits
    # ------------------------------------------------------------------ #

    def _siblings(self, parent_id: Optional[int]) -> List[Node]:
        if parent_id is None:
            return self.roots
        return self._nodes[parent_id].children

    def insert(
        self,
        kind: Union[BlockKind, str],
        parent_id: Optional[int] = None,
        mode: Optional[Mode] = None,
    ) -> Node:
        """
        Append a new block under `parent_id` (or at the top level).

        Raises RejectedEdit for nesting and mode violations and
        InvalidReference for an unknown parent. On error nothing changes.
        """
        try:
            kind = BlockKind(kind)
        except ValueError:
            raise RejectedEdit(f"Unknown block '{kind}'.") from None

        if mode is not None and not mode_allows(mode, kind):
            if kind is BlockKind.REPEAT:
                raise RejectedEdit("Repeat is only available in Loop mode.")
            raise RejectedEdit("Condition blocks are only available in Conditions mode.")

        if parent_id is not None:
            parent = self.find(parent_id)
            if parent is None:
                raise InvalidReference(f"No block with id {parent_id}.")
            if isinstance(parent, AtomicNode):
                raise RejectedEdit(f"Block {parent_id} cannot hold other blocks.")
            chain = list(self.ancestors(parent_id))
            if kind is BlockKind.REPEAT and any(isinstance(n, RepeatNode) for n in chain):
                raise RejectedEdit("Nested Repeat blocks are not allowed.")
            if kind.is_conditional and any(isinstance(n, ConditionalNode) for n in chain):
                raise RejectedEdit("Nested Condition blocks are not allowed.")

        node_id = self._next_id
        self._next_id += 1
        if kind is BlockKind.REPEAT:
            node: Node = RepeatNode(node_id)
        elif kind.is_conditional:
            node = ConditionalNode(node_id, UNTIL_PREDICATES[kind])
        else:
            node = AtomicNode(node_id, Command(kind.value))

        self._siblings(parent_id).append(node)
        self._nodes[node_id] = node
        self._parents[node_id] = parent_id
        logger.debug("Inserted %s as block %d under %s", kind.value, node_id, parent_id)
        return node

    def _forget(self, node: Node) -> None:
        self._nodes.pop(node.id, None)
        self._parents.pop(node.id, None)
        if not isinstance(node, AtomicNode):
            for child in node.children:
                self._forget(child)

    def remove(self, node_id: int) -> bool:
        """Cut a block (and everything inside it) out of the program."""
        node = self.find(node_id)
        if node is None:
            return False
        siblings = self._siblings(self._parents[node_id])
        del siblings[next(i for i, n in enumerate(siblings) if n is node)]
        self._forget(node)
        return True

    def set_repeat_count(self, node_id: int, value: int) -> Optional[int]:
        """Clamp and store a repeat count; returns the stored value, None for non-repeats."""
        node = self.find(node_id)
        if node is None:
            raise InvalidReference(f"No block with id {node_id}.")
        if not isinstance(node, RepeatNode):
            return None
        try:
            node.count = clamp_repeat_count(value)
        except (TypeError, ValueError, OverflowError):
            raise RejectedEdit("Repeat count must be a number.") from None
        return node.count

    def prune(self, node_type: type) -> int:
        """Remove every block of `node_type` wherever it sits; returns how many."""
        doomed = [n for n in self.walk() if isinstance(n, node_type)]
        removed = 0
        for node in doomed:
            # A doomed block may already have gone with an enclosing one.
            if node.id in self._nodes:
                self.remove(node.id)
                removed += 1
        return removed

    def prune_for_mode(self, mode: Mode) -> int:
        removed = 0
        if mode is not Mode.LOOP:
            removed += self.prune(RepeatNode)
        if mode is not Mode.CONDITIONS:
            removed += self.prune(ConditionalNode)
        if removed:
            logger.info("Removed %d block(s) not available in %s mode", removed, mode.value)
        return removed

    def clear(self) -> None:
        self.roots.clear()
        self._nodes.clear()
        self._parents.clear()
