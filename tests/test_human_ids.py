from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from mcqbank.models.orm import HierarchyItem, SequenceCounter
from mcqbank.models.variants import HierarchyVariant
from mcqbank.services.hierarchy import ResolvedNode
from mcqbank.services.question_ids import (
    Allocation, HUMAN_ID_PATTERN, HumanIdGenerator, SequenceAllocator, degraded_human_id, fallback_sequence,
)
from mcqbank.services.store import HierarchyStore


class FixedAllocator:
    def __init__(self, allocation=None, error=None):
        self.allocation, self.error = allocation, error

    def allocate(self):
        if self.error is not None:
            raise self.error
        return self.allocation


def test_generated_id_matches_pattern(db, make_chain):
    nodes = make_chain(db, HierarchyVariant.QUESTION_BANK, orders=(1, 2, 3, 4, 5))
    human_id = HumanIdGenerator(HierarchyStore(db)).generate(ResolvedNode(nodes[-1], HierarchyVariant.QUESTION_BANK))
    assert not human_id.degraded
    assert HUMAN_ID_PATTERN.match(human_id.value)
    assert human_id.value == "QB-12345-0000001"


def test_previous_papers_prefix(db, make_chain):
    nodes = make_chain(db, HierarchyVariant.PREVIOUS_PAPERS)
    human_id = HumanIdGenerator(HierarchyStore(db)).generate(ResolvedNode(nodes[2], HierarchyVariant.PREVIOUS_PAPERS))
    assert human_id.value.startswith("PP-11100-")


@pytest.mark.parametrize("name,prefix", [
    ("NEET Previous Year", "PP"),
    ("aiims 2019", "PP"),
    ("Old previous papers", "PP"),
    ("Physics", "QB"),
    ("", "QB"),
])
def test_legacy_prefix_follows_node_name(name, prefix):
    assert HierarchyVariant.LEGACY.id_prefix(SimpleNamespace(name=name)) == prefix


def test_dedicated_variants_ignore_node_name():
    neet = SimpleNamespace(name="NEET")
    assert HierarchyVariant.QUESTION_BANK.id_prefix(neet) == "QB"
    assert HierarchyVariant.PREVIOUS_PAPERS.id_prefix(SimpleNamespace(name="Physics")) == "PP"


def test_counter_fallback_is_flagged_degraded(db, make_chain):
    nodes = make_chain(db)
    gen = HumanIdGenerator(HierarchyStore(db), FixedAllocator(Allocation("0004242", fallback=True)))
    human_id = gen.generate(ResolvedNode(nodes[-1], HierarchyVariant.LEGACY))
    assert human_id.degraded
    assert human_id.value == "QB-11111-0004242"


def test_generator_never_raises():
    store = SimpleNamespace(db=None)
    gen = HumanIdGenerator(store, FixedAllocator(error=RuntimeError("redis down")))
    resolved = ResolvedNode(SimpleNamespace(id="n", name="x", level=1, order=1, parent_id=None),
                            HierarchyVariant.QUESTION_BANK)
    human_id = gen.generate(resolved)
    assert human_id.degraded
    assert human_id.reason == "redis down"
    assert human_id.value.startswith("QB-00000-")


def test_degraded_and_fallback_formats():
    assert degraded_human_id(now=1700000012.5) == "QB-00000-2500"
    value = fallback_sequence(now=1.0)
    assert len(value) == 7 and value.isdigit()
    assert 1000 <= int(value) <= 1999


def test_allocator_values_increase(db):
    allocator = SequenceAllocator(db)
    values = [allocator.next() for _ in range(5)]
    db.commit()
    assert values == ["0000001", "0000002", "0000003", "0000004", "0000005"]


def test_counter_failure_falls_back(db, monkeypatch):
    allocator = SequenceAllocator(db)

    def fail():
        raise OperationalError("UPDATE sequence_counters", {}, Exception("locked"))

    monkeypatch.setattr(allocator, "next_value", fail)
    allocation = allocator.allocate()
    assert allocation.fallback
    assert len(allocation.value) == 7


def test_concurrent_allocations_are_distinct(file_engine):
    factory = sessionmaker(bind=file_engine, autoflush=False, future=True)

    def allocate_many(_):
        values = []
        for _ in range(5):
            session = factory()
            try:
                allocation = SequenceAllocator(session).allocate()
                session.commit()
            finally:
                session.close()
            assert not allocation.fallback
            values.append(allocation.value)
        return values

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = [v for batch in pool.map(allocate_many, range(6)) for v in batch]

    assert len(results) == 30
    assert len(set(results)) == 30
    session = factory()
    assert session.get(SequenceCounter, "question_human_id").value == 30
    session.close()


def test_counter_failure_keeps_pending_writes(db, monkeypatch):
    db.add(HierarchyItem(id="kept", name="2024", level=1, type="Year", order=1))
    db.flush()
    allocator = SequenceAllocator(db)

    def fail():
        raise OperationalError("UPDATE sequence_counters", {}, Exception("locked"))

    monkeypatch.setattr(allocator, "next_value", fail)
    assert allocator.allocate().fallback
    db.commit()
    assert db.query(HierarchyItem).filter_by(id="kept").count() == 1
