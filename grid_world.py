from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import FrozenSet, Tuple

GRID_SIZE = 6  # Board is GRID_SIZE x GRID_SIZE cells
MOVE_LIMIT = 20  # Successful forward moves allowed per run

Cell = Tuple[int, int]

logger = logging.getLogger(__name__)


class Facing(IntEnum):
    """Agent orientation. Turning right is +1, turning left is -1 (mod 4)."""

    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3

    def turned_right(self) -> "Facing":
        return Facing((self + 1) % 4)

    def turned_left(self) -> "Facing":
        return Facing((self - 1) % 4)

    @property
    def label(self) -> str:
        return self.name.lower()


# Unit vectors in (x, y); y grows downward so "up" is -1.
DIRS = [(0, -1), (1, 0), (0, 1), (-1, 0)]


def step_forward(cell: Cell, facing: Facing) -> Cell:
    """Return the cell one step ahead of `cell`, ignoring bounds."""
    dx, dy = DIRS[facing]
    return cell[0] + dx, cell[1] + dy


class StepResult(Enum):
    MOVED = "moved"
    BLOCKED = "blocked"
    TURNED = "turned"
    WON = "won"


@dataclass(frozen=True)
class BoardState:
    """Read-only snapshot handed to renderers after every world mutation."""

    position: Cell
    facing: Facing
    goal: Cell
    obstacles: FrozenSet[Cell]
    move_count: int
    move_limit: int
    grid_size: int


@dataclass
class World:
    """
    One puzzle: board geometry, obstacles, goal and the agent's pose.

    Geometry (size, goal, obstacles, start pose) is fixed for the lifetime
    of the puzzle; only the pose and the move counter change.
    """

    start: Cell
    goal: Cell
    obstacles: FrozenSet[Cell] = frozenset()
    start_facing: Facing = Facing.RIGHT
    grid_size: int = GRID_SIZE
    move_limit: int = MOVE_LIMIT
    position: Cell = field(init=False)
    facing: Facing = field(init=False)
    move_count: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.obstacles = frozenset(self.obstacles)
        for cell in (self.start, self.goal, *self.obstacles):
            if not self.in_bounds(*cell):
                raise ValueError(f"Cell {cell} is outside the {self.grid_size}x{self.grid_size} board.")
        if self.start in self.obstacles:
            raise ValueError("Agent cannot start on an obstacle.")
        if self.goal in self.obstacles:
            raise ValueError("Goal cannot be an obstacle.")
        self.start_facing = Facing(self.start_facing)
        self.restart()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_size and 0 <= y < self.grid_size

    def is_obstacle(self, x: int, y: int) -> bool:
        return (x, y) in self.obstacles

    def cell_ahead(self) -> Cell:
        return step_forward(self.position, self.facing)

    def obstacle_ahead(self) -> bool:
        return self.is_obstacle(*self.cell_ahead())

    def boundary_ahead(self) -> bool:
        return not self.in_bounds(*self.cell_ahead())

    def at_goal(self) -> bool:
        return self.position == self.goal

    def snapshot(self) -> BoardState:
        return BoardState(
            position=self.position,
            facing=self.facing,
            goal=self.goal,
            obstacles=self.obstacles,
            move_count=self.move_count,
            move_limit=self.move_limit,
            grid_size=self.grid_size,
        )

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def restart(self) -> None:
        self.position = self.start
        self.facing = self.start_facing
        self.move_count = 0

    def _clamp(self, x: int, y: int) -> Cell:
        last = self.grid_size - 1
        return min(max(x, 0), last), min(max(y, 0), last)

    def try_move(self) -> StepResult:
        """
        Step one cell in the facing direction.

        Moving off the board is clamped, so the agent stays put but the
        move still counts. Obstacles reject the move without cost.
        """
        target = self._clamp(*self.cell_ahead())
        if self.is_obstacle(*target):
            logger.debug("Move from %s blocked by obstacle at %s", self.position, target)
            return StepResult.BLOCKED
        self.position = target
        self.move_count += 1
        if self.at_goal():
            return StepResult.WON
        return StepResult.MOVED

    def turn(self, direction: str) -> StepResult:
        if direction == "right":
            self.facing = self.facing.turned_right()
        elif direction == "left":
            self.facing = self.facing.turned_left()
        else:
            raise ValueError(f"Unknown turn direction {direction!r}")
        return StepResult.TURNED

    def turn_left(self) -> StepResult:
        return self.turn("left")

    def turn_right(self) -> StepResult:
        return self.turn("right")


def render_ascii(state: BoardState) -> str:
    """Plain text board, one row per line: '#' obstacle, 'G' goal, arrow for the agent."""
    arrows = {Facing.UP: "^", Facing.RIGHT: ">", Facing.DOWN: "v", Facing.LEFT: "<"}
    rows = []
    for y in range(state.grid_size):
        row = []
        for x in range(state.grid_size):
            if (x, y) == state.position:
                row.append(arrows[state.facing])
            elif (x, y) in state.obstacles:
                row.append("#")
            elif (x, y) == state.goal:
                row.append("G")
            else:
                row.append(".")
        rows.append("".join(row))
    return "\n".join(rows)
