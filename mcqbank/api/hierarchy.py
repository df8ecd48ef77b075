from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from mcqbank.core.database import get_db
from mcqbank.models.variants import HierarchyVariant
from mcqbank.services.hierarchy import HierarchyResolver, HierarchyService, hierarchy_path, walk_to_root
from mcqbank.services.question_ids import encode_level_code
from mcqbank.services.store import HierarchyStore, OrderUpdate


class HierarchyItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    level: int
    type: str
    color: Optional[str] = None
    order: int
    parent_id: Optional[str] = None
    question_count: int = 0
    is_published: bool = False
    children: List["HierarchyItemOut"] = []


HierarchyItemOut.model_rebuild()


class HierarchyItemCreate(BaseModel):
    name: str = Field(min_length=1)
    level: int = Field(ge=1, le=5)
    color: Optional[str] = None
    parent_id: Optional[str] = None
    question_count: int = Field(default=0, ge=0)


class HierarchyItemUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    question_count: Optional[int] = Field(default=None, ge=0)


class ReorderItem(BaseModel):
    id: str
    order: int = Field(ge=0)


class QuestionCountIn(BaseModel):
    count: int = Field(ge=0)


class HierarchyStatsRow(BaseModel):
    level: int; type: str; count: int; total_questions: int


class ResolvedOut(BaseModel):
    variant: str
    variant_id: str
    level_code: str
    node: HierarchyItemOut
    path: Dict[str, Optional[str]]


def build_router(variant: HierarchyVariant) -> APIRouter:
    """Routes for one hierarchy variant; every variant exposes the same surface."""
    router = APIRouter()

    def service(db: Session = Depends(get_db)) -> HierarchyService:
        return HierarchyService(db, variant)

    @router.get("", response_model=List[HierarchyItemOut])
    def list_roots(svc: HierarchyService = Depends(service)):
        return svc.find_all()

    @router.get("/stats", response_model=List[HierarchyStatsRow])
    def stats(svc: HierarchyService = Depends(service)):
        return svc.stats()

    @router.get("/published", response_model=List[HierarchyItemOut])
    def published(svc: HierarchyService = Depends(service)):
        return svc.find_published()

    @router.get("/level/{level}", response_model=List[HierarchyItemOut])
    def by_level(level: int, svc: HierarchyService = Depends(service)):
        return svc.find_by_level(level)

    @router.get("/parent/{parent_id}", response_model=List[HierarchyItemOut])
    def by_parent(parent_id: str, svc: HierarchyService = Depends(service)):
        return svc.find_by_parent(parent_id)

    @router.get("/{node_id}", response_model=HierarchyItemOut)
    def get_item(node_id: str, svc: HierarchyService = Depends(service)):
        return svc.find_one(node_id)

    @router.get("/{node_id}/path", response_model=Dict[str, Optional[str]])
    def get_path(node_id: str, svc: HierarchyService = Depends(service)):
        return svc.path(node_id)

    @router.post("", response_model=HierarchyItemOut, status_code=201)
    def create_item(payload: HierarchyItemCreate, svc: HierarchyService = Depends(service)):
        return svc.create(**payload.model_dump())

    @router.patch("/{node_id}", response_model=HierarchyItemOut)
    def update_item(node_id: str, payload: HierarchyItemUpdate, svc: HierarchyService = Depends(service)):
        return svc.update(node_id, **payload.model_dump())

    @router.delete("/{node_id}")
    def delete_item(node_id: str, svc: HierarchyService = Depends(service)):
        return {"ok": svc.delete(node_id)}

    @router.post("/reorder", response_model=List[HierarchyItemOut])
    def reorder(items: List[ReorderItem], svc: HierarchyService = Depends(service)):
        return svc.reorder([OrderUpdate(i.id, i.order) for i in items])

    @router.put("/{node_id}/question-count", response_model=HierarchyItemOut)
    def set_count(node_id: str, payload: QuestionCountIn, svc: HierarchyService = Depends(service)):
        return svc.set_question_count(node_id, payload.count)

    @router.post("/{node_id}/publish", response_model=HierarchyItemOut)
    def publish(node_id: str, svc: HierarchyService = Depends(service)):
        return svc.publish(node_id)

    @router.post("/{node_id}/unpublish", response_model=HierarchyItemOut)
    def unpublish(node_id: str, svc: HierarchyService = Depends(service)):
        return svc.unpublish(node_id)

    return router


resolve_router = APIRouter()


@resolve_router.get("/resolve/{node_id}", response_model=ResolvedOut)
def resolve_node(node_id: str, db: Session = Depends(get_db)):
    store = HierarchyStore(db)
    resolved = HierarchyResolver(store).resolve(node_id)
    return ResolvedOut(
        variant=resolved.variant.value,
        variant_id=resolved.variant_id,
        level_code=encode_level_code(store, resolved),
        node=HierarchyItemOut.model_validate(resolved.node),
        path=hierarchy_path(walk_to_root(store, resolved)),
    )
