import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from mcqbank.core.errors import NotFoundError, BadRequestError
from mcqbank.models.orm import Tag, TagCategory
from mcqbank.services.store import HierarchyStore

logger = logging.getLogger(__name__)

PRESET_TAGS = {
    TagCategory.SOURCES: [
        "Textbook", "NCERT", "Reference Book", "Study Guide", "Online Course",
        "Video Lecture", "Reference Material", "Research Paper", "Academic Journal", "Online Resource",
    ],
    TagCategory.EXAMS: [
        "JEE Main", "JEE Advanced", "NEET", "Board Exam", "CBSE",
        "ICSE", "State Board", "Competitive Exam", "Mock Test", "Practice Test",
    ],
}


class TagRegistry:
    """Usage-counted tags, unique per (trimmed name, category).

    Re-adding an existing tag bumps its usage count and reactivates it
    instead of creating a duplicate.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = HierarchyStore(db)

    def upsert(self, name: str, category: TagCategory, created_by: Optional[str] = None,
               is_preset: bool = False, commit: bool = True) -> Tag:
        if not name or not name.strip():
            raise BadRequestError("Tag name is required")
        tag = self.store.upsert_tag(name, TagCategory(category), created_by=created_by, is_preset=is_preset)
        if commit:
            self.db.commit()
        return tag

    def process_question_tags(self, source_tags: Sequence[str] = (), exam_tags: Sequence[str] = (),
                              created_by: Optional[str] = None, commit: bool = True) -> Dict[str, List[Tag]]:
        """Upsert every non-blank tag of a question, keeping list order."""
        results = {"source_tags": [], "exam_tags": []}
        for key, names, category in (
            ("source_tags", source_tags or (), TagCategory.SOURCES),
            ("exam_tags", exam_tags or (), TagCategory.EXAMS),
        ):
            for name in names:
                if name and name.strip():
                    results[key].append(self.upsert(name, category, created_by=created_by, commit=False))
        if commit:
            self.db.commit()
        return results

    def get_by_category(self, category: TagCategory) -> List[Tag]:
        stmt = (
            select(Tag)
            .where(Tag.category == TagCategory(category), Tag.is_active.is_(True))
            .order_by(Tag.usage_count.desc(), Tag.name.asc())
        )
        return list(self.db.scalars(stmt))

    def get_all(self) -> List[Tag]:
        stmt = (
            select(Tag)
            .where(Tag.is_active.is_(True))
            .order_by(Tag.category.asc(), Tag.usage_count.desc(), Tag.name.asc())
        )
        return list(self.db.scalars(stmt))

    def get_by_name_and_category(self, name: str, category: TagCategory) -> Optional[Tag]:
        return self.store.find_tag(name, TagCategory(category))

    def _get(self, tag_id: str) -> Tag:
        tag = self.db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(f"Tag with ID {tag_id} not found")
        return tag

    def update(self, tag_id: str, name: Optional[str] = None, usage_count: Optional[int] = None,
               is_active: Optional[bool] = None) -> Tag:
        tag = self._get(tag_id)
        if name is not None:
            if not name.strip():
                raise BadRequestError("Tag name is required")
            tag.name = name.strip()
        if usage_count is not None:
            tag.usage_count = usage_count
        if is_active is not None:
            tag.is_active = is_active
        self.db.commit()
        return tag

    def deactivate(self, tag_id: str) -> Tag:
        return self.update(tag_id, is_active=False)

    def delete(self, tag_id: str) -> bool:
        tag = self._get(tag_id)
        self.db.delete(tag)
        self.db.commit()
        return True

    def initialize_presets(self) -> int:
        count = 0
        for category, names in PRESET_TAGS.items():
            for name in names:
                self.upsert(name, category, is_preset=True, commit=False)
                count += 1
        self.db.commit()
        logger.info("Initialized %d preset tags", count)
        return count
