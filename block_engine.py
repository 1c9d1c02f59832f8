from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from grid_world import BoardState, StepResult, World
from program_tree import (
    AtomicNode,
    Command,
    ConditionalNode,
    Node,
    Predicate,
    RepeatNode,
    clamp_repeat_count,
)

COMMAND_LIMIT = 500  # Atomic commands allowed per run, turns included
PER_CONDITION_LIMIT = 200  # Passes one conditional block may make per entry
STEP_DELAY = 0.6  # Seconds between atomic commands when paced

logger = logging.getLogger(__name__)


class EventKind(Enum):
    MOVED = "moved"
    BLOCKED = "blocked"
    TURNED = "turned"
    WON = "won"
    LOST = "lost"
    DIAGNOSTIC = "diagnostic"


class Outcome(Enum):
    WON = "won"
    LOST = "lost"
    EMPTY = "empty"  # nothing to run; not counted as an attempt


@dataclass(frozen=True)
class StepEvent:
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.payload.get("message", "")


def diagnostic(message: str, **extra: Any) -> StepEvent:
    return StepEvent(EventKind.DIAGNOSTIC, {"message": message, **extra})


EmitFn = Callable[[StepEvent], None]
BoardFn = Callable[[BoardState], None]

LIMIT_COMMANDS = "command limit reached"
LIMIT_CONDITION = "condition loop limit reached"
LIMIT_MOVES = "max moves exceeded"
ENDED_AWAY = "program ended, not at goal"
ABORTED = "aborted"


class BlockEngine:
    """
    Runs a block program against a World one atomic command at a time.

    Responsibilities:
    - Walk the program tree depth-first.
    - Evaluate conditional predicates live against the board.
    - Enforce the command budget, per-conditional pass cap and move limit.
    - Yield after each atomic command so the caller can pace and animate.
    """

    def __init__(
        self,
        world: World,
        program: List[Node],
        emit_fn: Optional[EmitFn] = None,
        board_fn: Optional[BoardFn] = None,
        command_limit: int = COMMAND_LIMIT,
        per_condition_limit: int = PER_CONDITION_LIMIT,
    ) -> None:
        self.world = world
        self.program = program
        self.emit_fn = emit_fn or (lambda event: None)
        self.board_fn = board_fn or (lambda state: None)
        self.command_limit = command_limit
        self.per_condition_limit = per_condition_limit

        self.total_commands = 0
        self.running = False
        self.outcome: Optional[Outcome] = None
        self.reason: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Outcome handling
    # ------------------------------------------------------------------ #

    def emit(self, kind: EventKind, message: str, **payload: Any) -> StepEvent:
        event = StepEvent(kind, {"message": message, **payload})
        self.emit_fn(event)
        return event

    def _pose(self) -> Dict[str, Any]:
        return {
            "position": self.world.position,
            "facing": self.world.facing.label,
            "move_count": self.world.move_count,
        }

    def finish(self, outcome: Outcome, reason: Optional[str] = None) -> None:
        if not self.running:
            return
        self.running = False
        self.outcome = outcome
        self.reason = reason
        if outcome is Outcome.WON:
            self.emit(
                EventKind.WON,
                f"🎉 Reached the goal in {self.world.move_count} moves!",
                moves=self.world.move_count,
            )
        else:
            logger.warning("Run lost: %s", reason)
            self.emit(EventKind.LOST, f"❌ Run failed: {reason}.", reason=reason, moves=self.world.move_count)

    def abort(self) -> None:
        self.finish(Outcome.LOST, ABORTED)

    # ------------------------------------------------------------------ #
    # Predicates
    # ------------------------------------------------------------------ #

    def check(self, predicate: Predicate) -> bool:
        if predicate is Predicate.OBSTACLE_AHEAD:
            return self.world.obstacle_ahead()
        if predicate is Predicate.BOUNDARY_AHEAD:
            return self.world.boundary_ahead()
        return self.world.at_goal()

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def execute(self) -> Iterator[StepEvent]:
        """
        Start a run and return its step generator.

        Usage:
            steps = engine.execute()
            # then repeatedly: next(steps), waiting between calls
        """
        self.total_commands = 0
        self.outcome = None
        self.reason = None
        self.running = True
        return self._run()

    def _run(self) -> Iterator[StepEvent]:
        yield from self.exec_block(self.program)
        if not self.running:
            return
        if self.world.at_goal():
            self.finish(Outcome.WON)
        else:
            self.finish(Outcome.LOST, ENDED_AWAY)

    def exec_block(self, nodes: List[Node]) -> Iterator[StepEvent]:
        for node in nodes:
            if not self.running:
                return
            if isinstance(node, AtomicNode):
                yield from self._exec_atomic(node)
            elif isinstance(node, RepeatNode):
                yield from self._exec_repeat(node)
            elif isinstance(node, ConditionalNode):
                yield from self._exec_until(node)

    def _exec_repeat(self, node: RepeatNode) -> Iterator[StepEvent]:
        for _ in range(clamp_repeat_count(node.count)):
            if not self.running:
                return
            yield from self.exec_block(node.children)

    def _exec_until(self, node: ConditionalNode) -> Iterator[StepEvent]:
        passes = 0
        while self.running:
            if self.check(node.predicate):
                return
            if passes >= self.per_condition_limit or self.total_commands >= self.command_limit:
                self.emit_fn(diagnostic("⚠️ Condition loop limit reached. Stopping execution."))
                self.finish(Outcome.LOST, LIMIT_CONDITION)
                return
            yield from self.exec_block(node.children)
            passes += 1

    def _exec_atomic(self, node: AtomicNode) -> Iterator[StepEvent]:
        if self.total_commands >= self.command_limit:
            self.emit_fn(diagnostic("⚠️ Command limit reached. Stopping execution."))
            self.finish(Outcome.LOST, LIMIT_COMMANDS)
            return

        if node.command is Command.FORWARD:
            result = self.world.try_move()
        elif node.command is Command.TURN_LEFT:
            result = self.world.turn_left()
        else:
            result = self.world.turn_right()
        self.total_commands += 1
        logger.debug("Command %d: %s -> %s", self.total_commands, node.command.value, result.value)

        if result is StepResult.BLOCKED:
            event = self.emit(EventKind.BLOCKED, "⛔️ Cannot move there - obstacle!", **self._pose())
        elif node.command is Command.TURN_LEFT:
            event = self.emit(
                EventKind.TURNED, f"↺ Turned left (now facing {self.world.facing.label})", **self._pose()
            )
        elif node.command is Command.TURN_RIGHT:
            event = self.emit(
                EventKind.TURNED, f"↻ Turned right (now facing {self.world.facing.label})", **self._pose()
            )
        else:
            event = self.emit(EventKind.MOVED, f"✓ Moved {self.world.facing.label}", **self._pose())
        self.board_fn(self.world.snapshot())

        if result is StepResult.WON:
            self.finish(Outcome.WON)
        elif self.world.move_count >= self.world.move_limit:
            self.emit_fn(diagnostic(f"⚠️ Maximum moves ({self.world.move_limit}) exceeded!"))
            self.finish(Outcome.LOST, LIMIT_MOVES)

        yield event  # one animation step

    def run_to_end(self) -> Optional[Outcome]:
        """Execute synchronously, with no pacing."""
        for _ in self.execute():
            pass
        return self.outcome
