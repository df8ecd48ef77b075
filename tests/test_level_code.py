from types import SimpleNamespace

import pytest

from mcqbank.models.variants import HierarchyVariant
from mcqbank.services.hierarchy import ResolvedNode, walk_to_root
from mcqbank.services.question_ids import encode_level_code, level_digit
from mcqbank.services.store import HierarchyStore


def node(id, level, order, parent_id=None, name="n"):
    return SimpleNamespace(id=id, level=level, order=order, parent_id=parent_id, name=name)


class DictStore:
    def __init__(self, *nodes):
        self.nodes = {n.id: n for n in nodes}
        self.calls = 0

    def get_by_id(self, variant, node_id):
        self.calls += 1
        return self.nodes.get(node_id)


class BrokenStore:
    def get_by_id(self, variant, node_id):
        raise RuntimeError("connection reset")


@pytest.mark.parametrize("level,order,digit", [
    (3, 0, 3),
    (1, 1, 1),
    (4, 9, 9),
    (5, 12, 1),
    (2, 10, 1),
    (2, 99, 9),
    (3, 105, 0),
])
def test_level_digit(level, order, digit):
    assert level_digit(level, order) == digit


def test_full_chain_encodes_one_digit_per_level(db, make_chain):
    nodes = make_chain(db, HierarchyVariant.LEGACY, orders=(1, 3, 0, 9, 12))
    resolved = ResolvedNode(nodes[-1], HierarchyVariant.LEGACY)
    assert encode_level_code(HierarchyStore(db), resolved) == "13391"


def test_level_code_uses_the_resolved_variant(db, make_chain):
    make_chain(db, HierarchyVariant.LEGACY, orders=(9, 9, 9, 9, 9))
    nodes = make_chain(db, HierarchyVariant.QUESTION_BANK, orders=(2, 0, 3, 0, 4))
    resolved = ResolvedNode(nodes[-1], HierarchyVariant.QUESTION_BANK)
    assert encode_level_code(HierarchyStore(db), resolved) == "22344"


def test_missing_parent_leaves_upper_levels_zero():
    chapter = node("c", 5, 7, parent_id="s")
    section = node("s", 4, 2, parent_id="gone")
    store = DictStore(chapter, section)
    assert encode_level_code(store, ResolvedNode(chapter, HierarchyVariant.LEGACY)) == "00027"


def test_node_without_parent_only_fills_its_own_level():
    part = node("p", 3, 4)
    assert encode_level_code(DictStore(part), ResolvedNode(part, HierarchyVariant.LEGACY)) == "00400"


def test_encoder_never_raises():
    chapter = node("c", 5, 3, parent_id="s")
    assert encode_level_code(BrokenStore(), ResolvedNode(chapter, HierarchyVariant.QUESTION_BANK)) == "00000"


def test_walk_is_bounded_and_stops_on_cycles():
    a = node("a", 2, 1, parent_id="b")
    b = node("b", 1, 1, parent_id="a")
    store = DictStore(a, b)
    assert [n.id for n in walk_to_root(store, ResolvedNode(a, HierarchyVariant.LEGACY))] == ["b", "a"]

    chain = [node(str(i), 5, 1, parent_id=str(i + 1)) for i in range(10)]
    store = DictStore(*chain)
    path = walk_to_root(store, ResolvedNode(chain[0], HierarchyVariant.LEGACY), max_depth=5)
    assert len(path) == 5
    assert store.calls == 4
