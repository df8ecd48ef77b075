from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from mcqbank.core.database import get_db
from mcqbank.models.orm import QuestionType, Difficulty
from mcqbank.services.questions import QuestionService

router = APIRouter()


class OptionIn(BaseModel):
    text: str
    is_correct: bool = False
    order: Optional[int] = None
    explanation: Optional[str] = None
    references: Optional[str] = None


class OptionOut(OptionIn):
    id: str
    order: int


class QuestionCreate(BaseModel):
    type: QuestionType
    question: str = Field(min_length=1)
    explanation: Optional[str] = None
    references: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    points: int = Field(default=1, ge=0)
    time_limit: Optional[int] = Field(default=None, ge=1)
    tags: List[str] = []
    source_tags: List[str] = []
    exam_tags: List[str] = []
    hierarchy_item_id: str
    original_hierarchy_item_id: Optional[str] = None
    options: List[OptionIn] = []
    assertion: Optional[str] = None
    reasoning: Optional[str] = None
    created_by: Optional[str] = None


class QuestionUpdate(BaseModel):
    type: Optional[QuestionType] = None
    question: Optional[str] = None
    explanation: Optional[str] = None
    references: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    points: Optional[int] = Field(default=None, ge=0)
    time_limit: Optional[int] = Field(default=None, ge=1)
    tags: Optional[List[str]] = None
    source_tags: Optional[List[str]] = None
    exam_tags: Optional[List[str]] = None
    options: Optional[List[OptionIn]] = None
    assertion: Optional[str] = None
    reasoning: Optional[str] = None


class QuestionOut(BaseModel):
    id: str
    human_id: str
    type: QuestionType
    question: str
    explanation: Optional[str] = None
    references: Optional[str] = None
    difficulty: Difficulty
    points: int
    time_limit: Optional[int] = None
    tags: List[str]
    source_tags: List[str]
    exam_tags: List[str]
    options: List[OptionOut]
    assertion: Optional[str] = None
    reasoning: Optional[str] = None
    is_active: bool
    hierarchy_item_id: str
    hierarchy_path: Optional[Dict[str, Optional[str]]] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuestionPage(BaseModel):
    questions: List[QuestionOut]; total: int; page: int; pages: int


def get_service(db: Session = Depends(get_db)) -> QuestionService:
    return QuestionService(db)


@router.post("", response_model=QuestionOut, status_code=201)
def create_question(payload: QuestionCreate, svc: QuestionService = Depends(get_service)):
    data = payload.model_dump(exclude={"options"})
    return svc.create(options=[o.model_dump() for o in payload.options], **data)


@router.get("", response_model=QuestionPage)
def list_questions(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=200),
                   svc: QuestionService = Depends(get_service)):
    return svc.find_all(page, limit)


@router.get("/by-human-id/{human_id}", response_model=QuestionOut)
def get_by_human_id(human_id: str, svc: QuestionService = Depends(get_service)):
    return svc.find_by_human_id(human_id)


@router.get("/by-hierarchy/{hierarchy_item_id}", response_model=QuestionPage)
def list_by_hierarchy(hierarchy_item_id: str, page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=200),
                      svc: QuestionService = Depends(get_service)):
    return svc.find_by_hierarchy(hierarchy_item_id, page, limit)


@router.get("/{question_id}", response_model=QuestionOut)
def get_question(question_id: str, svc: QuestionService = Depends(get_service)):
    return svc.find_one(question_id)


@router.patch("/{question_id}", response_model=QuestionOut)
def update_question(question_id: str, payload: QuestionUpdate, svc: QuestionService = Depends(get_service)):
    data = payload.model_dump(exclude={"options"}, exclude_none=True)
    options = [o.model_dump() for o in payload.options] if payload.options is not None else None
    return svc.update(question_id, options=options, **data)


@router.delete("/{question_id}")
def delete_question(question_id: str, svc: QuestionService = Depends(get_service)):
    return {"ok": svc.delete(question_id)}
