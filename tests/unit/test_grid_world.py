import pytest

from grid_world import Facing, StepResult, World, render_ascii


@pytest.mark.unit
class TestFacing:
    def test_four_right_turns_are_identity(self):
        for facing in Facing:
            f = facing
            for _ in range(4):
                f = f.turned_right()
            assert f is facing

    def test_left_undoes_right(self):
        for facing in Facing:
            assert facing.turned_right().turned_left() is facing

    def test_right_turn_order(self):
        assert Facing.UP.turned_right() is Facing.RIGHT
        assert Facing.RIGHT.turned_right() is Facing.DOWN
        assert Facing.DOWN.turned_right() is Facing.LEFT
        assert Facing.LEFT.turned_right() is Facing.UP


@pytest.mark.unit
class TestWorldMoves:
    def test_forward_moves_and_counts(self, make_world):
        world = make_world()
        assert world.try_move() is StepResult.MOVED
        assert world.position == (1, 0)
        assert world.move_count == 1

    def test_obstacle_blocks_without_cost(self, make_world):
        world = make_world(obstacles=[(1, 0)])
        assert world.try_move() is StepResult.BLOCKED
        assert world.position == (0, 0)
        assert world.move_count == 0

    def test_edge_is_clamped_in_place(self, make_world):
        world = make_world()
        world.turn_left()  # facing up, off the top edge
        assert world.try_move() is StepResult.MOVED
        assert world.position == (0, 0)
        assert world.move_count == 1

    def test_reaching_goal_reports_won(self, make_world):
        world = make_world(goal=(1, 0))
        assert world.try_move() is StepResult.WON
        assert world.at_goal()

    def test_turns_cost_nothing(self, make_world):
        world = make_world()
        assert world.turn_right() is StepResult.TURNED
        assert world.facing is Facing.DOWN
        assert world.turn("left") is StepResult.TURNED
        assert world.facing is Facing.RIGHT
        assert world.move_count == 0

    def test_restart_restores_start_pose(self, make_world):
        world = make_world()
        world.try_move()
        world.turn_right()
        world.restart()
        assert world.position == (0, 0)
        assert world.facing is Facing.RIGHT
        assert world.move_count == 0


@pytest.mark.unit
class TestWorldQueries:
    def test_obstacle_and_boundary_ahead(self, make_world):
        world = make_world(obstacles=[(1, 0)])
        assert world.obstacle_ahead()
        assert not world.boundary_ahead()
        world.turn_left()
        assert world.boundary_ahead()
        assert not world.obstacle_ahead()

    def test_snapshot_is_a_copy_of_the_pose(self, make_world):
        world = make_world(obstacles=[(3, 3)])
        snap = world.snapshot()
        world.try_move()
        assert snap.position == (0, 0)
        assert snap.obstacles == frozenset({(3, 3)})
        assert snap.move_limit == 20

    def test_render_ascii(self, make_world):
        world = make_world(goal=(2, 0), obstacles=[(1, 1)], grid_size=3)
        assert render_ascii(world.snapshot()) == ">.G\n.#.\n..."


@pytest.mark.unit
class TestWorldValidation:
    @pytest.mark.parametrize(
        "start, goal, obstacles",
        [
            ((0, 0), (5, 5), [(0, 0)]),
            ((0, 0), (5, 5), [(5, 5)]),
            ((6, 0), (5, 5), []),
            ((0, 0), (5, -1), []),
        ],
    )
    def test_invalid_layouts_raise(self, start, goal, obstacles):
        with pytest.raises(ValueError):
            World(start=start, goal=goal, obstacles=frozenset(obstacles))
