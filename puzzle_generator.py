"""
Random puzzle generation with a solvability check.

A puzzle is only handed out once a breadth-first search over
(position, facing) states proves the goal can be reached using the
same forward/turn moves the player's blocks have.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import AbstractSet, Set, Tuple

from grid_world import GRID_SIZE, MOVE_LIMIT, Cell, Facing, World, step_forward

OBSTACLE_COUNT = 10  # Obstacles placed on every generated board
MAX_GENERATION_ATTEMPTS = 1000  # Re-rolls before giving up

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when no solvable puzzle was found within the retry budget."""

    pass


def is_reachable(
    start: Cell,
    goal: Cell,
    obstacles: AbstractSet[Cell],
    grid_size: int = GRID_SIZE,
    facing: Facing = Facing.RIGHT,
) -> bool:
    """
    Return True if `goal` can be reached from `start`.

    States are (x, y, facing). From each state the agent may step forward
    (when the cell ahead is on the board and free) or turn either way.
    Turns cost nothing here; the facing at the goal does not matter.
    """
    queue = deque([(start[0], start[1], Facing(facing))])
    visited: Set[Tuple[int, int, Facing]] = {queue[0]}

    while queue:
        x, y, d = queue.popleft()
        if (x, y) == goal:
            return True

        nx, ny = step_forward((x, y), d)
        candidates = [(x, y, d.turned_right()), (x, y, d.turned_left())]
        if 0 <= nx < grid_size and 0 <= ny < grid_size and (nx, ny) not in obstacles:
            candidates.insert(0, (nx, ny, d))

        for state in candidates:
            if state not in visited:
                visited.add(state)
                queue.append(state)
    return False


def _random_cell(rng, grid_size: int) -> Cell:
    return rng.randrange(grid_size), rng.randrange(grid_size)


def generate_puzzle(
    rng,
    grid_size: int = GRID_SIZE,
    obstacle_count: int = OBSTACLE_COUNT,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
    move_limit: int = MOVE_LIMIT,
    start_facing: Facing = Facing.RIGHT,
) -> World:
    """
    Roll start, goal and obstacles until the layout is solvable.

    `rng` only needs a `randrange` method, so tests can pass a
    `random.Random(seed)` or a scripted stand-in.
    """
    free_cells = grid_size * grid_size - 2
    if obstacle_count < 0 or obstacle_count > free_cells:
        raise ValueError(
            f"Cannot place {obstacle_count} obstacles on a {grid_size}x{grid_size} board."
        )

    for attempt in range(1, max_attempts + 1):
        start = _random_cell(rng, grid_size)
        goal = _random_cell(rng, grid_size)
        while goal == start:
            goal = _random_cell(rng, grid_size)

        obstacles: Set[Cell] = set()
        while len(obstacles) < obstacle_count:
            cell = _random_cell(rng, grid_size)
            if cell != start and cell != goal:
                obstacles.add(cell)

        if is_reachable(start, goal, obstacles, grid_size, start_facing):
            logger.debug("Generated solvable puzzle after %d attempt(s)", attempt)
            return World(
                start=start,
                goal=goal,
                obstacles=frozenset(obstacles),
                start_facing=start_facing,
                grid_size=grid_size,
                move_limit=move_limit,
            )
        logger.debug("Attempt %d unsolvable (start=%s goal=%s), re-rolling", attempt, start, goal)

    raise GenerationError(f"No solvable puzzle found in {max_attempts} attempts.")


def world_is_solvable(world: World) -> bool:
    """Run the reachability check on an existing world from its start pose."""
    return is_reachable(
        world.start,
        world.goal,
        world.obstacles,
        world.grid_size,
        world.start_facing,
    )
