"""
The narrow query contract the core issues against storage.

Every operation the resolver, the id generator, the hierarchy service and the
tag registry need from the database goes through `HierarchyStore`, so the
rest of the core never builds queries itself.
"""
import logging
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mcqbank.core.errors import NotFoundError, StoreError
from mcqbank.models.orm import Question, QuestionOption, Tag, TagCategory
from mcqbank.models.variants import HierarchyVariant

logger = logging.getLogger(__name__)


class OrderUpdate(NamedTuple):
    id: str
    order: int


class HierarchyStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------- hierarchy lookups ----------

    def get_by_id(self, variant: HierarchyVariant, node_id: Optional[str]):
        """Point lookup within one variant. Returns None on a miss."""
        if node_id is None:
            return None
        try:
            return self.db.get(variant.model, node_id)
        except SQLAlchemyError as e:
            # a failed statement aborts the whole transaction on PostgreSQL
            self.db.rollback()
            raise StoreError(f"{variant.value} lookup of {node_id!r} failed: {e}") from e

    def get_parent(self, variant: HierarchyVariant, node_id: str):
        node = self.get_by_id(variant, node_id)
        if node is None:
            return None
        return self.get_by_id(variant, node.parent_id)

    def children_of(self, variant: HierarchyVariant, parent_id: str) -> list:
        model = variant.model
        return list(self.db.scalars(select(model).where(model.parent_id == parent_id).order_by(model.order)))

    def max_order(self, variant: HierarchyVariant, level: int, parent_id: Optional[str]) -> int:
        model = variant.model
        parent_clause = model.parent_id.is_(None) if parent_id is None else model.parent_id == parent_id
        stmt = select(func.max(model.order)).where(model.level == level, parent_clause)
        return self.db.scalar(stmt) or 0

    def batch_update_order(self, variant: HierarchyVariant, items: Iterable[OrderUpdate]) -> list:
        """Write every item's order in one transaction, or none of them."""
        updated = []
        try:
            for item in items:
                node = self.db.get(variant.model, item.id)
                if node is None:
                    raise NotFoundError(f"{variant.item_label} with ID {item.id} not found")
                node.order = item.order
                updated.append(node)
            self.db.flush()
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.warning("Reorder of %d %s items rolled back", len(updated), variant.value)
            raise
        return updated

    # ---------- questions ----------

    def count_active_questions(self, hierarchy_id: Optional[str] = None) -> int:
        stmt = select(func.count(Question.id)).where(Question.is_active.is_(True))
        if hierarchy_id is not None:
            stmt = stmt.where(Question.hierarchy_item_id == hierarchy_id)
        return self.db.scalar(stmt) or 0

    def human_id_exists(self, human_id: str) -> bool:
        return self.db.scalar(select(Question.id).where(Question.human_id == human_id)) is not None

    def create_question(self, data: dict, options: List[dict]) -> Question:
        """Insert a question and its options in a single flush."""
        question = Question(**data)
        question.options = [QuestionOption(**o) for o in options]
        self.db.add(question)
        self.db.flush()
        return question

    def replace_options(self, question_id: str, options: List[dict]) -> Question:
        """Delete every option of the question and insert the given ones."""
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question with ID {question_id} not found")
        question.options = [QuestionOption(**o) for o in options]
        self.db.flush()
        return question

    def set_question_count(self, hierarchy_id: str, count: int) -> None:
        node = self.get_by_id(HierarchyVariant.LEGACY, hierarchy_id)
        if node is None:
            raise NotFoundError(f"Hierarchy item with ID {hierarchy_id} not found")
        node.question_count = count
        self.db.flush()

    # ---------- tags ----------

    def find_tag(self, name: str, category: TagCategory) -> Optional[Tag]:
        return self.db.scalar(select(Tag).where(Tag.name == name.strip(), Tag.category == category))

    def upsert_tag(self, name: str, category: TagCategory, created_by: Optional[str] = None,
                   is_preset: bool = False) -> Tag:
        name = name.strip()
        tag = self.find_tag(name, category)
        if tag is None:
            try:
                with self.db.begin_nested():
                    tag = Tag(name=name, category=category, created_by=created_by,
                              is_preset=bool(is_preset), usage_count=1, is_active=True)
                    self.db.add(tag)
                return tag
            except IntegrityError:
                # inserted by a concurrent writer after the lookup
                tag = self.find_tag(name, category)
                if tag is None:
                    raise
                logger.info("Tag %r (%s) created concurrently, bumping its usage", name, category.value)
        # incremented in SQL so concurrent upserts don't lose counts
        tag.usage_count = Tag.usage_count + 1
        tag.is_active = True
        self.db.flush()
        return tag
