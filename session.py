"""
The game session: the one object a front end talks to.

It owns the current World, the player's ProgramTree, the running
BlockEngine and the progression state. Nothing raised inside the core
escapes a public method here; refused operations become `diagnostic`
events on the `on_event` callback and the call returns a falsy value.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Iterator, Optional, Union

from block_engine import (
    COMMAND_LIMIT,
    PER_CONDITION_LIMIT,
    STEP_DELAY,
    BlockEngine,
    BoardFn,
    EmitFn,
    EventKind,
    Outcome,
    StepEvent,
    diagnostic,
)
from grid_world import GRID_SIZE, MOVE_LIMIT, BoardState, World, render_ascii
from program_tree import BlockKind, EditError, Mode, Node, ProgramTree, RejectedEdit
from progression import (
    MAX_ATTEMPTS_PER_MODE,
    AttemptRecord,
    ProgressionState,
    advance_if_needed,
    attempts_used,
    current_mode,
    record_attempt,
)
from progression import attempts_remaining as progression_attempts_remaining
from puzzle_generator import OBSTACLE_COUNT, GenerationError, generate_puzzle

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    WON = "won"
    LOST = "lost"


class GameSession:
    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        world: Optional[World] = None,
        privileged: bool = False,
        on_event: Optional[EmitFn] = None,
        on_board: Optional[BoardFn] = None,
        grid_size: int = GRID_SIZE,
        obstacle_count: int = OBSTACLE_COUNT,
        move_limit: int = MOVE_LIMIT,
        command_limit: int = COMMAND_LIMIT,
        per_condition_limit: int = PER_CONDITION_LIMIT,
        max_attempts_per_mode: int = MAX_ATTEMPTS_PER_MODE,
    ) -> None:
        self.on_event = on_event or (lambda event: None)
        self.on_board = on_board or (lambda state: None)
        self.rng = rng or random.Random(seed)

        self.grid_size = grid_size
        self.obstacle_count = obstacle_count
        self.move_limit = move_limit
        self.command_limit = command_limit
        self.per_condition_limit = per_condition_limit

        self.program = ProgramTree()
        self.progression = ProgressionState(max_attempts_per_mode=max_attempts_per_mode)
        self.privileged = privileged
        self.mode = current_mode(self.progression)
        self.score = 0

        self.state = RunState.IDLE
        self.attempted = False
        self.last_outcome: Optional[Outcome] = None
        self.engine: Optional[BlockEngine] = None
        self._steps: Optional[Iterator[StepEvent]] = None

        # A failed first generation leaves no board at all, so let it raise.
        self.world = world if world is not None else self._roll_world()

    # ------------------------------------------------------------------ #
    # Outbound
    # ------------------------------------------------------------------ #

    def _emit(self, event: StepEvent) -> None:
        if event.kind is EventKind.DIAGNOSTIC:
            logger.info("%s", event.message)
        self.on_event(event)

    def _say(self, message: str) -> None:
        self._emit(diagnostic(message))

    def _refuse(self, error: EditError) -> None:
        logger.warning("Refused: %s", error)
        self._emit(diagnostic(str(error), error=type(error).__name__))

    def _publish_board(self, state: Optional[BoardState] = None) -> None:
        self.on_board(state or self.world.snapshot())

    def board_state(self) -> BoardState:
        return self.world.snapshot()

    @property
    def running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def locked(self) -> bool:
        return self.progression.locked

    def attempts_remaining(self, mode: Optional[Union[Mode, str]] = None) -> Optional[int]:
        """Runs left in `mode` (default: the current one); None when unrestricted."""
        if mode is not None:
            try:
                mode = Mode(mode)
            except ValueError:
                self._say(f"Unknown mode '{mode}'.")
                return None
        if self.privileged:
            return None
        return progression_attempts_remaining(self.progression, mode)

    # ------------------------------------------------------------------ #
    # Puzzle lifecycle
    # ------------------------------------------------------------------ #

    def _roll_world(self) -> World:
        return generate_puzzle(
            self.rng,
            grid_size=self.grid_size,
            obstacle_count=self.obstacle_count,
            move_limit=self.move_limit,
        )

    def generate(self, seed: Optional[int] = None) -> bool:
        """Replace the board with a fresh solvable puzzle; the program is kept."""
        if self.running:
            self._refuse(RejectedEdit("Cannot change the puzzle while the program is running."))
            return False
        if seed is not None:
            self.rng = random.Random(seed)
        try:
            self.world = self._roll_world()
        except GenerationError as e:
            logger.error("Puzzle generation failed: %s", e)
            self._say(f"Could not generate a puzzle: {e}")
            return False
        logger.debug("New puzzle:\n%s", render_ascii(self.world.snapshot()))
        self.attempted = False
        self.state = RunState.IDLE
        self._publish_board()
        return True

    def next_puzzle(self) -> bool:
        if self.running:
            self._refuse(RejectedEdit("Stop the program before moving on."))
            return False
        if not self.generate():
            return False
        self.program.clear()
        self._say("New puzzle! Good luck! 🎯")
        return True

    def reset(self) -> bool:
        if self.running:
            self._refuse(RejectedEdit("Stop the program before resetting."))
            return False
        if not self.generate():
            return False
        self.program.clear()
        self.score = 0
        self._say("Game reset! 🔄")
        return True

    # ------------------------------------------------------------------ #
    # Program edits
    # ------------------------------------------------------------------ #

    def _check_editable(self) -> None:
        if self.running:
            raise RejectedEdit("Cannot edit the program while it is running.")
        if self.attempted:
            raise RejectedEdit(
                'This puzzle has already been attempted. Click "Next Puzzle" to continue.'
            )

    def insert(self, kind: Union[BlockKind, str], parent_id: Optional[int] = None) -> Optional[Node]:
        try:
            self._check_editable()
            return self.program.insert(kind, parent_id, mode=self.mode)
        except EditError as e:
            self._refuse(e)
            return None

    def remove(self, node_id: int) -> bool:
        try:
            self._check_editable()
        except EditError as e:
            self._refuse(e)
            return False
        if not self.program.remove(node_id):
            self._say(f"No block with id {node_id}.")
            return False
        return True

    def set_repeat_count(self, node_id: int, value: int) -> Optional[int]:
        try:
            self._check_editable()
            return self.program.set_repeat_count(node_id, value)
        except EditError as e:
            self._refuse(e)
            return None

    # ------------------------------------------------------------------ #
    # Modes & players
    # ------------------------------------------------------------------ #

    def _apply_mode(self, mode: Mode) -> None:
        self.mode = mode
        removed = self.program.prune_for_mode(mode)
        if removed:
            self._say(f"Removed {removed} block(s) not available in {mode.value} mode.")

    def set_mode(self, mode: Union[Mode, str]) -> bool:
        try:
            mode = Mode(mode)
        except ValueError:
            self._say(f"Unknown mode '{mode}'.")
            return False
        if self.running:
            self._refuse(RejectedEdit("Cannot change mode while the program is running."))
            return False
        if not self.privileged and mode is not current_mode(self.progression):
            self._refuse(
                RejectedEdit(f"Mode is set by your progress ({current_mode(self.progression).value}).")
            )
            return False
        self._apply_mode(mode)
        return True

    def set_user(self, privileged: bool) -> None:
        self.privileged = bool(privileged)
        if not self.privileged and not self.running:
            self._apply_mode(current_mode(self.progression))

    # ------------------------------------------------------------------ #
    # Running
    # ------------------------------------------------------------------ #

    def run(self) -> bool:
        """Start executing the program; returns True if a run began."""
        if self.running:
            self._say("A program is already running.")
            return False
        if self.attempted:
            self._say('This puzzle has already been attempted. Click "Next Puzzle" to continue.')
            return False

        if not self.privileged:
            if self.progression.locked:
                self._say("🔒 You have exhausted all allowed attempts.")
                return False
            self._apply_mode(current_mode(self.progression))
            if attempts_used(self.progression) >= self.progression.max_attempts_per_mode:
                self.progression = advance_if_needed(self.progression)
                if self.progression.locked:
                    self._say("🔒 All attempts exhausted. You can no longer play.")
                    return False
                self._say(f"➡️ Moving to {current_mode(self.progression).value} mode.")
                self._apply_mode(current_mode(self.progression))

        if self.program.is_empty():
            self.last_outcome = Outcome.EMPTY
            self._say("No commands in program. Add some blocks!")
            return False

        self.world.restart()
        self._publish_board()
        self.engine = BlockEngine(
            self.world,
            self.program.roots,
            emit_fn=self._emit,
            board_fn=self._publish_board,
            command_limit=self.command_limit,
            per_condition_limit=self.per_condition_limit,
        )
        self._say("📋 Executing program...")
        self._steps = self.engine.execute()
        self.state = RunState.RUNNING
        self.attempted = True
        return True

    def step(self) -> Optional[StepEvent]:
        """
        Advance the running program by one atomic command.

        Meant to be called from a timer; returns the command's event, or
        None once the run is over.
        """
        if not self.running or self._steps is None:
            return None
        try:
            event: Optional[StepEvent] = next(self._steps)
        except StopIteration:
            event = None
        if not self.engine.running:
            self._complete()
        return event

    def run_to_end(self) -> Optional[Outcome]:
        """Run synchronously; returns the outcome, or None if no run started."""
        if not self.run():
            return None
        while self.running:
            self.step()
        return self.last_outcome

    async def run_paced(self, delay: float = STEP_DELAY) -> Optional[Outcome]:
        """Run with `delay` seconds between atomic commands, yielding to the event loop."""
        if not self.run():
            return None
        while self.running:
            self.step()
            if self.running:
                await asyncio.sleep(delay)
        return self.last_outcome

    def abort(self) -> bool:
        """Stop the current run as a loss and let the same puzzle be tried again."""
        if not self.running:
            self._say("Nothing is running.")
            return False
        self.engine.abort()
        self._complete()
        self.world.restart()
        self.attempted = False
        self.state = RunState.IDLE
        self._publish_board()
        return True

    def _complete(self) -> None:
        outcome = self.engine.outcome
        self._steps = None
        self.last_outcome = outcome
        if outcome is Outcome.WON:
            self.state = RunState.WON
            self.score += 1
            self._say("✅ SUCCESS! +1 Point")
        else:
            self.state = RunState.LOST
            self._say("❌ FAILED! 0 Points")

        if self.privileged:
            return
        before = current_mode(self.progression)
        self.progression = record_attempt(
            self.progression,
            AttemptRecord(success=outcome is Outcome.WON, moves=self.world.move_count),
        )
        if self.progression.locked:
            self._say("🔒 All attempts exhausted. You can no longer play.")
        elif current_mode(self.progression) is not before:
            self._apply_mode(current_mode(self.progression))
            self._say(f"➡️ Progressing to {self.mode.value} mode.")
