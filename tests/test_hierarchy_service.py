import pytest

from mcqbank.core.errors import BadRequestError, NotFoundError
from mcqbank.models.variants import HierarchyVariant
from mcqbank.services.hierarchy import HierarchyService
from mcqbank.services.store import OrderUpdate


@pytest.fixture
def svc(db):
    return HierarchyService(db, HierarchyVariant.QUESTION_BANK)


def test_create_assigns_next_order_and_level_type(svc):
    first = svc.create("2024", 1)
    second = svc.create("2025", 1)
    subject = svc.create("Physics", 2, parent_id=first.id)
    assert (first.order, second.order, subject.order) == (1, 2, 1)
    assert (first.type, subject.type) == ("Year", "Subject")


def test_previous_papers_level_labels(db):
    svc = HierarchyService(db, HierarchyVariant.PREVIOUS_PAPERS)
    assert svc.create("NEET", 1).type == "Exam"
    with pytest.raises(BadRequestError) as exc:
        svc.create("2019", 2)
    assert exc.value.message == "Only level 1 items (Exams) can have no parent"


def test_create_rejects_bad_structure(svc):
    root = svc.create("2024", 1)
    with pytest.raises(BadRequestError) as exc:
        svc.create("Orphan", 3)
    assert exc.value.message == "Only level 1 items (Years) can have no parent"
    with pytest.raises(BadRequestError) as exc:
        svc.create("Skip", 3, parent_id=root.id)
    assert exc.value.message == "Invalid level hierarchy. Parent level is 1, child level should be 2"
    with pytest.raises(NotFoundError) as exc:
        svc.create("Lost", 2, parent_id="missing")
    assert exc.value.message == "Parent with ID missing not found"
    with pytest.raises(BadRequestError):
        svc.create("Deep", 6, parent_id=root.id)


def test_find_all_nests_children(db, svc, make_chain):
    make_chain(db, HierarchyVariant.QUESTION_BANK)
    tree = svc.find_all()
    assert len(tree) == 1
    depth, node = 1, tree[0]
    while node["children"]:
        node = node["children"][0]
        depth += 1
    assert depth == 5
    assert node["type"] == "Chapter"


def test_find_one_and_missing(svc):
    root = svc.create("2024", 1)
    svc.create("Physics", 2, parent_id=root.id)
    assert [c["name"] for c in svc.find_one(root.id)["children"]] == ["Physics"]
    with pytest.raises(NotFoundError) as exc:
        svc.find_one("nope")
    assert exc.value.message == "Main Bank hierarchy item with ID nope not found"


def test_find_by_level_and_parent(svc):
    root = svc.create("2024", 1)
    svc.create("Physics", 2, parent_id=root.id)
    svc.create("Chemistry", 2, parent_id=root.id)
    assert [n.name for n in svc.find_by_level(2)] == ["Physics", "Chemistry"]
    assert [n.name for n in svc.find_by_parent(root.id)] == ["Physics", "Chemistry"]
    with pytest.raises(BadRequestError):
        svc.find_by_level(0)


def test_delete_refuses_nodes_with_children(svc):
    root = svc.create("2024", 1)
    child = svc.create("Physics", 2, parent_id=root.id)
    with pytest.raises(BadRequestError) as exc:
        svc.delete(root.id)
    assert exc.value.message == "Cannot delete item with children"
    assert svc.delete(child.id)
    assert svc.delete(root.id)


def test_reorder_applies_all(svc):
    a, b, c = svc.create("A", 1), svc.create("B", 1), svc.create("C", 1)
    svc.reorder([OrderUpdate(a.id, 3), OrderUpdate(b.id, 1), OrderUpdate(c.id, 2)])
    assert [n.name for n in svc.find_by_level(1)] == ["B", "C", "A"]


def test_reorder_is_atomic(db, svc):
    a, b = svc.create("A", 1), svc.create("B", 1)
    with pytest.raises(NotFoundError):
        svc.reorder([OrderUpdate(a.id, 9), OrderUpdate("bogus", 1), OrderUpdate(b.id, 8)])
    db.expire_all()
    assert [(n.name, n.order) for n in svc.find_by_level(1)] == [("A", 1), ("B", 2)]


def test_reorder_rejects_bad_batches(svc):
    a = svc.create("A", 1)
    with pytest.raises(BadRequestError):
        svc.reorder([])
    with pytest.raises(BadRequestError):
        svc.reorder([OrderUpdate(a.id, 1), OrderUpdate(a.id, 2)])
    with pytest.raises(BadRequestError):
        svc.reorder([OrderUpdate(a.id, -1)])


def test_question_count_only_on_chapters(db, svc, make_chain):
    nodes = make_chain(db, HierarchyVariant.QUESTION_BANK)
    assert svc.set_question_count(nodes[-1].id, 12).question_count == 12
    with pytest.raises(BadRequestError) as exc:
        svc.set_question_count(nodes[0].id, 3)
    assert exc.value.message == "Only chapters (level 5) can have question counts"


def test_publish_requires_published_parent(svc):
    root = svc.create("2024", 1)
    child = svc.create("Physics", 2, parent_id=root.id)
    with pytest.raises(BadRequestError) as exc:
        svc.publish(child.id)
    assert exc.value.message == "Please publish the parent first to proceed"
    svc.publish(root.id)
    assert svc.publish(child.id).is_published


def test_unpublish_cascades_to_children(svc):
    root = svc.create("2024", 1)
    child = svc.create("Physics", 2, parent_id=root.id)
    svc.publish(root.id)
    svc.publish(child.id)
    svc.unpublish(root.id)
    assert not svc.find_one(child.id)["is_published"]


def test_find_published(svc):
    root = svc.create("2024", 1)
    svc.create("Hidden", 1)
    physics = svc.create("Physics", 2, parent_id=root.id)
    svc.create("Chemistry", 2, parent_id=root.id)
    svc.publish(root.id)
    svc.publish(physics.id)
    published = svc.find_published()
    assert [n["name"] for n in published] == ["2024", "Physics"]
    assert [c["name"] for c in published[0]["children"]] == ["Physics"]


def test_stats_and_path(db, svc, make_chain):
    nodes = make_chain(db, HierarchyVariant.QUESTION_BANK)
    svc.set_question_count(nodes[-1].id, 4)
    stats = {row["level"]: row for row in svc.stats()}
    assert stats[5] == {"level": 5, "type": "Chapter", "count": 1, "total_questions": 4}
    path = svc.path(nodes[-1].id)
    assert path == {"year": "Year 1", "subject": "Subject 1", "part": "Part 1",
                    "section": "Section 1", "chapter": "Chapter 1"}


def test_update(svc):
    root = svc.create("2024", 1)
    updated = svc.update(root.id, name="2025", color="#ff0000")
    assert (updated.name, updated.color, updated.order) == ("2025", "#ff0000", 1)
