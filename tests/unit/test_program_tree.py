import pytest

from program_tree import (
    AtomicNode,
    BlockKind,
    Command,
    ConditionalNode,
    InvalidReference,
    Mode,
    Predicate,
    RejectedEdit,
    RepeatNode,
)

F, L, R = Command.FORWARD, Command.TURN_LEFT, Command.TURN_RIGHT


@pytest.mark.unit
class TestInsert:
    def test_ids_are_fresh_and_order_is_kept(self, tree):
        a = tree.insert("forward")
        b = tree.insert(BlockKind.TURN_LEFT)
        c = tree.insert("turn_right")
        assert [a.id, b.id, c.id] == [1, 2, 3]
        assert [n.command for n in tree] == [F, L, R]

    def test_builds_each_node_type(self, tree):
        rep = tree.insert("repeat")
        cond = tree.insert("until_obstacle")
        assert isinstance(rep, RepeatNode) and rep.count == 2
        assert isinstance(cond, ConditionalNode)
        assert cond.predicate is Predicate.OBSTACLE_AHEAD

    def test_children_go_under_parent(self, tree):
        rep = tree.insert("repeat", mode=Mode.LOOP)
        child = tree.insert("forward", rep.id, mode=Mode.LOOP)
        assert rep.children == [child]
        assert tree.parent_of(child.id) is rep
        assert tree.roots == [rep]

    def test_nested_repeat_rejected(self, tree):
        rep = tree.insert("repeat", mode=Mode.LOOP)
        with pytest.raises(RejectedEdit):
            tree.insert("repeat", rep.id, mode=Mode.LOOP)
        assert len(tree) == 1
        assert rep.children == []

    def test_nested_conditional_rejected(self, tree):
        cond = tree.insert("until_goal", mode=Mode.CONDITIONS)
        with pytest.raises(RejectedEdit):
            tree.insert("until_boundary", cond.id, mode=Mode.CONDITIONS)
        assert len(tree) == 1

    def test_nesting_checks_whole_ancestor_chain(self, tree):
        cond = tree.insert("until_goal")
        rep = tree.insert("repeat", cond.id)
        with pytest.raises(RejectedEdit):
            tree.insert("until_obstacle", rep.id)
        assert len(tree) == 2

    @pytest.mark.parametrize(
        "kind, mode",
        [
            ("repeat", Mode.BASIC),
            ("repeat", Mode.CONDITIONS),
            ("until_goal", Mode.BASIC),
            ("until_obstacle", Mode.LOOP),
        ],
    )
    def test_mode_gates_block_kinds(self, tree, kind, mode):
        with pytest.raises(RejectedEdit):
            tree.insert(kind, mode=mode)
        assert tree.is_empty()

    @pytest.mark.parametrize("mode", list(Mode))
    def test_atomic_blocks_allowed_in_every_mode(self, tree, mode):
        assert isinstance(tree.insert("forward", mode=mode), AtomicNode)

    def test_unknown_parent(self, tree):
        with pytest.raises(InvalidReference):
            tree.insert("forward", 42)

    def test_atomic_parent_rejected(self, tree):
        fwd = tree.insert("forward")
        with pytest.raises(RejectedEdit):
            tree.insert("forward", fwd.id)

    def test_unknown_kind_rejected(self, tree):
        with pytest.raises(RejectedEdit):
            tree.insert("jump")


@pytest.mark.unit
class TestRemoveAndUpdate:
    def test_remove_nested_block(self, tree):
        rep = tree.insert("repeat")
        a = tree.insert("forward", rep.id)
        b = tree.insert("turn_left", rep.id)
        assert tree.remove(a.id)
        assert rep.children == [b]
        assert a.id not in tree

    def test_remove_container_drops_subtree(self, tree):
        rep = tree.insert("repeat")
        child = tree.insert("forward", rep.id)
        assert tree.remove(rep.id)
        assert tree.is_empty()
        assert tree.find(child.id) is None
        assert len(tree) == 0

    def test_remove_unknown_id(self, tree):
        tree.insert("forward")
        assert tree.remove(99) is False
        assert len(tree) == 1

    def test_ids_not_reused_after_remove(self, tree):
        a = tree.insert("forward")
        tree.remove(a.id)
        assert tree.insert("forward").id == a.id + 1

    @pytest.mark.parametrize("value, stored", [(0, 1), (-5, 1), (7, 7), (20, 20), (99, 20)])
    def test_repeat_count_is_clamped(self, tree, value, stored):
        rep = tree.insert("repeat")
        assert tree.set_repeat_count(rep.id, value) == stored
        assert rep.count == stored

    def test_repeat_count_on_other_block_is_noop(self, tree):
        fwd = tree.insert("forward")
        assert tree.set_repeat_count(fwd.id, 5) is None

    def test_repeat_count_unknown_id(self, tree):
        with pytest.raises(InvalidReference):
            tree.set_repeat_count(7, 3)

    @pytest.mark.parametrize("value", ["abc", float("nan"), float("inf"), None])
    def test_repeat_count_must_be_numeric(self, tree, value):
        rep = tree.insert("repeat")
        tree.set_repeat_count(rep.id, 5)
        with pytest.raises(RejectedEdit) as excinfo:
            tree.set_repeat_count(rep.id, value)
        assert rep.count == 5
        assert excinfo.value.__cause__ is None
        assert excinfo.value.__suppress_context__

    def test_unknown_kind_does_not_chain(self, tree):
        with pytest.raises(RejectedEdit) as excinfo:
            tree.insert("jump")
        assert excinfo.value.__suppress_context__


@pytest.mark.unit
class TestPruning:
    def test_leaving_loop_removes_repeats(self, tree):
        tree.insert("forward")
        rep = tree.insert("repeat")
        tree.insert("turn_left", rep.id)
        assert tree.prune_for_mode(Mode.BASIC) == 1
        assert [n.command for n in tree] == [F]
        assert len(tree) == 1

    def test_leaving_conditions_removes_nested_conditionals(self, tree):
        rep = tree.insert("repeat")
        tree.insert("until_goal", rep.id)
        tree.insert("until_obstacle")
        tree.prune(ConditionalNode)
        assert not any(isinstance(n, ConditionalNode) for n in tree.walk())
        assert tree.roots == [rep]
        assert rep.children == []

    def test_conditions_mode_keeps_conditionals(self, tree):
        tree.insert("until_goal")
        tree.insert("repeat")
        assert tree.prune_for_mode(Mode.CONDITIONS) == 1
        assert isinstance(tree.roots[0], ConditionalNode)


@pytest.mark.unit
class TestFlatten:
    def test_repeat_is_unrolled(self, tree):
        tree.insert("forward")
        rep = tree.insert("repeat")
        tree.set_repeat_count(rep.id, 3)
        tree.insert("turn_left", rep.id)
        tree.insert("forward", rep.id)
        assert list(tree.flatten()) == [F, L, F, L, F, L, F]

    def test_conditional_body_inlined_once(self, tree):
        cond = tree.insert("until_goal")
        tree.insert("forward", cond.id)
        tree.insert("turn_right")
        assert list(tree.flatten()) == [F, R]

    def test_restartable(self, tree):
        tree.insert("forward")
        tree.insert("turn_left")
        unrolled = tree.flatten()
        assert list(unrolled) == list(unrolled) == [F, L]

    def test_stops_at_limit(self, tree):
        rep = tree.insert("repeat")
        tree.set_repeat_count(rep.id, 20)
        for _ in range(30):
            tree.insert("forward", rep.id)
        assert len(list(tree.flatten())) == 500
        assert len(list(tree.flatten(limit=5))) == 5

    def test_describe_indents_children(self, tree):
        rep = tree.insert("repeat")
        tree.insert("forward", rep.id)
        assert tree.describe() == ["[1] Repeat 2 times", "    [2] Go Forward"]
