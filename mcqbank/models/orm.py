from datetime import datetime
from typing import List, Optional
import enum
import uuid

from sqlalchemy import (
    BigInteger, Integer, String, Text, Boolean, ForeignKey, JSON, DateTime,
    UniqueConstraint, Index, Enum as SQLEnum, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, declared_attr

from mcqbank.core.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class QuestionType(str, enum.Enum):
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    ASSERTION_REASONING = "ASSERTION_REASONING"


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class TagCategory(str, enum.Enum):
    SOURCES = "SOURCES"
    EXAMS = "EXAMS"


# ========== Hierarchy Models ==========

class HierarchyColumns:
    """Columns shared by the three hierarchy tables.

    The tables are structurally identical but stored separately; a parent
    always lives in the same table as its child.
    """

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(32))
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    question_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    @declared_attr
    def parent_id(cls) -> Mapped[Optional[str]]:
        return mapped_column(
            String(64), ForeignKey(f"{cls.__tablename__}.id"), nullable=True, index=True
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} L{self.level} #{self.order} {self.name!r}>"


class HierarchyItem(HierarchyColumns, Base):
    """Legacy hierarchy. Questions are always filed against this table."""

    __tablename__ = "hierarchy_items"

    questions: Mapped[List["Question"]] = relationship(back_populates="hierarchy_item")


class QuestionBankHierarchy(HierarchyColumns, Base):
    __tablename__ = "question_bank_hierarchy"


class PreviousPapersHierarchy(HierarchyColumns, Base):
    __tablename__ = "previous_papers_hierarchy"


# ========== Content Models ==========

class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_hierarchy_active", "hierarchy_item_id", "is_active"),
        Index("idx_questions_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    human_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    type: Mapped[QuestionType] = mapped_column(SQLEnum(QuestionType), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    references: Mapped[Optional[str]] = mapped_column(Text)
    difficulty: Mapped[Difficulty] = mapped_column(
        SQLEnum(Difficulty), nullable=False, default=Difficulty.MEDIUM
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    time_limit: Mapped[Optional[int]] = mapped_column(Integer)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    source_tags: Mapped[list] = mapped_column(JSON, default=list)
    exam_tags: Mapped[list] = mapped_column(JSON, default=list)
    assertion: Mapped[Optional[str]] = mapped_column(Text)
    reasoning: Mapped[Optional[str]] = mapped_column(Text)
    hierarchy_item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hierarchy_items.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    hierarchy_item: Mapped["HierarchyItem"] = relationship(back_populates="questions")
    options: Mapped[List["QuestionOption"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.order",
    )


class QuestionOption(Base):
    __tablename__ = "question_options"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    question_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    references: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    question: Mapped["Question"] = relationship(back_populates="options")


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_tags_name_category"),
        Index("idx_tags_category_usage", "category", "usage_count"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[TagCategory] = mapped_column(SQLEnum(TagCategory), nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_preset: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


# ========== Identity Models ==========

class SequenceCounter(Base):
    """Named monotonically increasing counters, bumped with a single UPDATE."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())
