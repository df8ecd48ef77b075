"""
Question lifecycle: create, update, read and soft delete.

Creating a question resolves its hierarchy node, validates the options,
derives the public human id, persists the question with its options and
tags in one transaction, then refreshes the owning node's question count.
"""
import logging
import math
from typing import List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mcqbank.core.config import settings
from mcqbank.core.errors import NotFoundError, BadRequestError
from mcqbank.jobs.queue import enqueue_recount
from mcqbank.models.orm import Question, QuestionType, Difficulty, HierarchyItem
from mcqbank.models.variants import HierarchyVariant
from mcqbank.services.hierarchy import HierarchyResolver, ResolvedNode, hierarchy_path, walk_to_root
from mcqbank.services.question_ids import HumanId, HumanIdGenerator
from mcqbank.services.store import HierarchyStore
from mcqbank.services.tags import TagRegistry
from mcqbank.services.validation import validate_question

logger = logging.getLogger(__name__)

SCALAR_FIELDS = ("type", "question", "explanation", "references", "difficulty", "points",
                 "time_limit", "tags", "assertion", "reasoning")


def option_rows(options: Sequence[dict]) -> List[dict]:
    rows = []
    for index, option in enumerate(options):
        rows.append({
            "text": option["text"],
            "is_correct": bool(option.get("is_correct")),
            "order": option.get("order") or index,
            "explanation": option.get("explanation"),
            "references": option.get("references"),
        })
    return rows


def added_tags(current: Optional[Sequence[str]], incoming: Optional[Sequence[str]]) -> List[str]:
    if incoming is None:
        return []
    known = {t.strip() for t in current or [] if t}
    added = []
    for name in incoming:
        if name and name.strip() and name.strip() not in known:
            known.add(name.strip())
            added.append(name)
    return added


class QuestionService:
    def __init__(self, db: Session, id_generator: Optional[HumanIdGenerator] = None):
        self.db = db
        self.store = HierarchyStore(db)
        self.resolver = HierarchyResolver(self.store)
        self.id_generator = id_generator or HumanIdGenerator(self.store)
        self.tags = TagRegistry(db)

    # ---------- formatting ----------

    def format(self, question: Question) -> dict:
        path = hierarchy_path(
            walk_to_root(self.store, ResolvedNode(question.hierarchy_item, HierarchyVariant.LEGACY))
        ) if question.hierarchy_item is not None else None
        return {
            "id": question.id,
            "human_id": question.human_id,
            "type": question.type,
            "question": question.question,
            "explanation": question.explanation,
            "references": question.references,
            "difficulty": question.difficulty,
            "points": question.points,
            "time_limit": question.time_limit,
            "tags": list(question.tags or []),
            "source_tags": list(question.source_tags or []),
            "exam_tags": list(question.exam_tags or []),
            "options": [
                {
                    "id": o.id,
                    "text": o.text,
                    "is_correct": o.is_correct,
                    "order": o.order,
                    "explanation": o.explanation,
                    "references": o.references,
                }
                for o in sorted(question.options, key=lambda o: o.order)
            ],
            "assertion": question.assertion,
            "reasoning": question.reasoning,
            "is_active": question.is_active,
            "hierarchy_item_id": question.hierarchy_item_id,
            "hierarchy_path": path,
            "created_by": question.created_by,
            "created_at": question.created_at,
            "updated_at": question.updated_at,
        }

    # ---------- identity ----------

    def _unique_human_id(self, resolved: ResolvedNode) -> HumanId:
        for _ in range(settings.HUMAN_ID_MAX_ATTEMPTS):
            human_id = self.id_generator.generate(resolved)
            if human_id.degraded:
                if not settings.ALLOW_DEGRADED_HUMAN_ID:
                    raise BadRequestError("Unable to generate unique question ID")
                logger.warning("Using degraded human id %s (%s)", human_id.value, human_id.reason)
            if not self.store.human_id_exists(human_id.value):
                return human_id
            logger.info("Human id %s already taken, regenerating", human_id.value)
        raise BadRequestError("Unable to generate unique question ID")

    # ---------- commands ----------

    def create(self, *, type: QuestionType, question: str, hierarchy_item_id: str,
               options: Optional[Sequence[dict]] = None, explanation: Optional[str] = None,
               references: Optional[str] = None, difficulty: Optional[Difficulty] = None,
               points: Optional[int] = None, time_limit: Optional[int] = None,
               tags: Optional[List[str]] = None, source_tags: Optional[List[str]] = None,
               exam_tags: Optional[List[str]] = None, original_hierarchy_item_id: Optional[str] = None,
               assertion: Optional[str] = None, reasoning: Optional[str] = None,
               created_by: Optional[str] = None) -> dict:
        if self.store.get_by_id(HierarchyVariant.LEGACY, hierarchy_item_id) is None:
            raise NotFoundError(f"Hierarchy item with ID {hierarchy_item_id} not found")

        resolved = self.resolver.resolve(original_hierarchy_item_id or hierarchy_item_id)
        validate_question(type, options, assertion, reasoning)

        data = {
            "type": QuestionType(type),
            "question": question,
            "explanation": explanation,
            "references": references,
            "difficulty": Difficulty(difficulty or Difficulty.MEDIUM),
            "points": points if points is not None else 1,
            "time_limit": time_limit,
            "tags": list(tags or []),
            "source_tags": list(source_tags or []),
            "exam_tags": list(exam_tags or []),
            "assertion": assertion,
            "reasoning": reasoning,
            "hierarchy_item_id": hierarchy_item_id,
            "created_by": created_by,
            "is_active": True,
        }
        rows = option_rows(options or [])

        for attempt in range(1, settings.HUMAN_ID_MAX_ATTEMPTS + 1):
            human_id = self._unique_human_id(resolved)
            try:
                created = self.store.create_question({**data, "human_id": human_id.value}, rows)
                self.tags.process_question_tags(source_tags or [], exam_tags or [],
                                                created_by=created_by, commit=False)
                self.db.commit()
                break
            except IntegrityError:
                self.db.rollback()
                if not self.store.human_id_exists(human_id.value):
                    raise
                logger.warning("Human id %s taken by a concurrent writer (attempt %d)", human_id.value, attempt)
        else:
            raise BadRequestError("Unable to generate unique question ID")

        logger.info("Created question %s (%s) under %s", created.id, created.human_id, hierarchy_item_id)
        self._refresh_count(hierarchy_item_id)
        return self.format(created)

    def update(self, question_id: str, *, options: Optional[Sequence[dict]] = None,
               source_tags: Optional[List[str]] = None, exam_tags: Optional[List[str]] = None,
               **fields) -> dict:
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question with ID {question_id} not found")
        unknown = set(fields) - set(SCALAR_FIELDS)
        if unknown:
            raise BadRequestError(f"Unknown question fields: {', '.join(sorted(unknown))}")

        if fields.get("type") is not None or options is not None:
            validate_question(
                fields.get("type") or question.type,
                options if options is not None else question.options,
                fields.get("assertion") if fields.get("assertion") is not None else question.assertion,
                fields.get("reasoning") if fields.get("reasoning") is not None else question.reasoning,
            )

        if options is not None:
            self.store.replace_options(question.id, option_rows(options))

        for name in SCALAR_FIELDS:
            value = fields.get(name)
            if value is None:
                continue
            if name == "type":
                value = QuestionType(value)
            elif name == "difficulty":
                value = Difficulty(value)
            elif name == "tags":
                value = list(value)
            setattr(question, name, value)

        # only tags the question did not carry before count as a new use
        added_sources = added_tags(question.source_tags, source_tags)
        added_exams = added_tags(question.exam_tags, exam_tags)
        if source_tags is not None:
            question.source_tags = list(source_tags)
        if exam_tags is not None:
            question.exam_tags = list(exam_tags)
        if added_sources or added_exams:
            self.tags.process_question_tags(added_sources, added_exams,
                                            created_by=question.created_by, commit=False)

        self.db.commit()
        return self.format(question)

    def delete(self, question_id: str) -> bool:
        """Soft delete: the question is deactivated, never removed."""
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question with ID {question_id} not found")
        question.is_active = False
        hierarchy_item_id = question.hierarchy_item_id
        self.db.commit()
        self._refresh_count(hierarchy_item_id)
        return True

    # ---------- counts ----------

    def recount(self, hierarchy_item_id: str) -> int:
        """Recompute a legacy node's question count from its active questions."""
        count = self.store.count_active_questions(hierarchy_item_id)
        self.store.set_question_count(hierarchy_item_id, count)
        self.db.commit()
        return count

    def recount_all(self) -> dict:
        ids = list(self.db.scalars(select(HierarchyItem.id)))
        return {node_id: self.recount(node_id) for node_id in ids}

    def _refresh_count(self, hierarchy_item_id: str) -> None:
        try:
            self.recount(hierarchy_item_id)
        except Exception:
            self.db.rollback()
            logger.exception("Question count refresh failed for %s", hierarchy_item_id)
            enqueue_recount(hierarchy_item_id)

    # ---------- queries ----------

    def find_one(self, question_id: str) -> dict:
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question with ID {question_id} not found")
        return self.format(question)

    def find_by_human_id(self, human_id: str) -> dict:
        question = self.db.scalar(select(Question).where(Question.human_id == human_id))
        if question is None:
            raise NotFoundError(f"Question with human ID {human_id} not found")
        return self.format(question)

    def _page(self, where, page: int, limit: int) -> dict:
        if page < 1 or limit < 1:
            raise BadRequestError("page and limit must be positive")
        total = self.db.scalar(select(func.count(Question.id)).where(*where)) or 0
        stmt = (
            select(Question)
            .where(*where)
            .order_by(Question.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "questions": [self.format(q) for q in self.db.scalars(stmt)],
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
        }

    def find_by_hierarchy(self, hierarchy_item_id: str, page: int = 1, limit: Optional[int] = None) -> dict:
        where = (Question.hierarchy_item_id == hierarchy_item_id, Question.is_active.is_(True))
        return self._page(where, page, limit or settings.DEFAULT_PAGE_SIZE)

    def find_all(self, page: int = 1, limit: Optional[int] = None) -> dict:
        return self._page((Question.is_active.is_(True),), page, limit or settings.DEFAULT_PAGE_SIZE)
