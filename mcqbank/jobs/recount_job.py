import logging
from typing import Optional

from rq import get_current_job

from mcqbank.core.database import SessionLocal
from mcqbank.services.questions import QuestionService

logger = logging.getLogger(__name__)


def recount_job(hierarchy_item_id: Optional[str] = None, session_factory=None):
    """Recompute denormalized question counts. Safe to run any number of times."""
    job = get_current_job()
    if job is not None:
        job.meta.update({"state": "running", "target": hierarchy_item_id or "all"})
        job.save_meta()
    db = (session_factory or SessionLocal)()
    try:
        service = QuestionService(db)
        if hierarchy_item_id is None:
            counts = service.recount_all()
        else:
            counts = {hierarchy_item_id: service.recount(hierarchy_item_id)}
    except Exception:
        db.rollback()
        if job is not None:
            job.meta.update({"state": "failed"})
            job.save_meta()
        raise
    finally:
        db.close()
    if job is not None:
        job.meta.update({"state": "done", "updated": len(counts)})
        job.save_meta()
    logger.info("Recounted %d hierarchy items", len(counts))
    return {"updated": len(counts), "counts": counts}
