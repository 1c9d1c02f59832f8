import pytest

from grid_world import World
from program_tree import ProgramTree
from session import GameSession


@pytest.fixture
def events():
    return []


@pytest.fixture
def make_world():
    def _make(start=(0, 0), goal=(5, 5), obstacles=(), **kwargs):
        return World(start=start, goal=goal, obstacles=frozenset(obstacles), **kwargs)

    return _make


@pytest.fixture
def tree():
    return ProgramTree()


@pytest.fixture
def make_session(events, make_world):
    def _make(world=None, **kwargs):
        kwargs.setdefault("seed", 1234)
        return GameSession(
            world=world if world is not None else make_world(goal=(2, 0)),
            on_event=events.append,
            **kwargs,
        )

    return _make
