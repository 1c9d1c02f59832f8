import random

import pytest

from grid_world import Facing
from puzzle_generator import GenerationError, generate_puzzle, is_reachable, world_is_solvable


class ScriptedRandom:
    """Hands out a fixed sequence of randrange results."""

    def __init__(self, values):
        self.values = list(values)

    def randrange(self, stop):
        value = self.values.pop(0)
        assert 0 <= value < stop
        return value


@pytest.mark.unit
class TestReachability:
    def test_straight_line(self):
        assert is_reachable((0, 0), (3, 0), set())

    def test_needs_a_turn(self):
        assert is_reachable((0, 0), (0, 2), set(), grid_size=3)

    def test_wall_splits_board(self):
        wall = {(1, 0), (1, 1), (1, 2)}
        assert not is_reachable((0, 0), (2, 2), wall, grid_size=3)

    def test_boxed_in_corner(self):
        assert not is_reachable((0, 0), (5, 5), {(1, 0), (0, 1)})

    def test_detour_around_obstacles(self):
        obstacles = {(1, 0), (1, 1), (1, 2), (3, 5), (3, 4), (3, 3)}
        assert is_reachable((0, 0), (5, 0), obstacles, facing=Facing.UP)


@pytest.mark.unit
class TestGenerator:
    def test_goal_equal_to_start_is_resampled(self):
        rng = ScriptedRandom([0, 0, 0, 0, 2, 0])
        world = generate_puzzle(rng, obstacle_count=0)
        assert world.start == (0, 0)
        assert world.goal == (2, 0)
        assert world.facing is Facing.RIGHT

    def test_obstacles_skip_start_goal_and_duplicates(self):
        rng = ScriptedRandom([0, 0, 1, 0, 0, 0, 2, 2, 2, 2, 3, 3, 1, 0, 4, 4])
        world = generate_puzzle(rng, obstacle_count=3)
        assert world.obstacles == frozenset({(2, 2), (3, 3), (4, 4)})

    def test_unsolvable_layout_is_rerolled(self):
        boxed_in = [0, 0, 2, 0, 1, 0, 0, 1]
        open_board = [0, 0, 1, 0, 3, 3, 4, 4]
        world = generate_puzzle(ScriptedRandom(boxed_in + open_board), obstacle_count=2)
        assert world.goal == (1, 0)
        assert world.obstacles == frozenset({(3, 3), (4, 4)})

    def test_gives_up_after_max_attempts(self):
        with pytest.raises(GenerationError):
            generate_puzzle(ScriptedRandom([0, 0, 2, 0, 1, 0, 0, 1]), obstacle_count=2, max_attempts=1)

    def test_too_many_obstacles(self):
        with pytest.raises(ValueError):
            generate_puzzle(random.Random(0), grid_size=3, obstacle_count=8)

    @pytest.mark.parametrize("seed", range(40))
    def test_generated_puzzles_are_solvable(self, seed):
        world = generate_puzzle(random.Random(seed))
        assert world_is_solvable(world)
        assert len(world.obstacles) == 10
        assert world.start != world.goal
        assert world.start not in world.obstacles
        assert world.goal not in world.obstacles

    def test_same_seed_same_puzzle(self):
        a = generate_puzzle(random.Random(99))
        b = generate_puzzle(random.Random(99))
        assert (a.start, a.goal, a.obstacles) == (b.start, b.goal, b.obstacles)
