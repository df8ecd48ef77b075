from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from sqlalchemy.orm import Session
from mcqbank.core.database import get_db
from mcqbank.models.orm import TagCategory
from mcqbank.services.tags import TagRegistry

router = APIRouter()


class TagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    category: TagCategory
    usage_count: int
    is_preset: bool
    is_active: bool
    created_by: Optional[str] = None


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    category: TagCategory
    created_by: Optional[str] = None
    is_preset: bool = False


class TagUpdate(BaseModel):
    name: Optional[str] = None
    usage_count: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


def get_registry(db: Session = Depends(get_db)) -> TagRegistry:
    return TagRegistry(db)


@router.get("", response_model=List[TagOut])
def list_tags(category: Optional[TagCategory] = None, reg: TagRegistry = Depends(get_registry)):
    return reg.get_by_category(category) if category else reg.get_all()


@router.get("/lookup", response_model=Optional[TagOut])
def lookup_tag(name: str, category: TagCategory, reg: TagRegistry = Depends(get_registry)):
    return reg.get_by_name_and_category(name, category)


@router.post("", response_model=TagOut)
def upsert_tag(payload: TagCreate, reg: TagRegistry = Depends(get_registry)):
    return reg.upsert(payload.name, payload.category, created_by=payload.created_by, is_preset=payload.is_preset)


@router.post("/presets")
def initialize_presets(reg: TagRegistry = Depends(get_registry)):
    return {"ok": True, "count": reg.initialize_presets()}


@router.patch("/{tag_id}", response_model=TagOut)
def update_tag(tag_id: str, payload: TagUpdate, reg: TagRegistry = Depends(get_registry)):
    if payload.name is not None and not payload.name.strip():
        raise HTTPException(400, "Tag name is required")
    return reg.update(tag_id, **payload.model_dump())


@router.post("/{tag_id}/deactivate", response_model=TagOut)
def deactivate_tag(tag_id: str, reg: TagRegistry = Depends(get_registry)):
    return reg.deactivate(tag_id)


@router.delete("/{tag_id}")
def delete_tag(tag_id: str, reg: TagRegistry = Depends(get_registry)):
    return {"ok": reg.delete(tag_id)}
