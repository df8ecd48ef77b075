from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional
from mcqbank.jobs.queue import enqueue_recount

router = APIRouter()


class StartRecount(BaseModel):
    hierarchy_item_id: Optional[str] = None


@router.post("/recount", status_code=202)
def start_recount(payload: StartRecount):
    job = enqueue_recount(payload.hierarchy_item_id)
    if job is None:
        raise HTTPException(503, "Job queue unavailable")
    return {"job_id": job.get_id(), "target": payload.hierarchy_item_id or "all"}
