from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcqbank.core.config import settings
from mcqbank.core.database import init_db
from mcqbank.core.errors import QBankError
from mcqbank.models.variants import HierarchyVariant
from mcqbank.api.hierarchy import build_router, resolve_router
from mcqbank.api.questions import router as questions_router
from mcqbank.api.tags import router as tags_router
from mcqbank.api.admin import router as admin_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s...", settings.APP_NAME)
    init_db()
    yield
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
    openapi_url="/openapi.json" if not settings.is_production() else None,
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(QBankError)
async def qbank_error_handler(request: Request, exc: QBankError):
    """Report not-found and bad-request errors with their reason text."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


v1 = settings.API_V1_PREFIX
app.include_router(resolve_router, prefix=f"{v1}/hierarchy", tags=["hierarchy"])
for variant in HierarchyVariant:
    app.include_router(build_router(variant), prefix=f"{v1}/hierarchy/{variant.value}", tags=[f"hierarchy:{variant.value}"])
app.include_router(questions_router, prefix=f"{v1}/questions", tags=["questions"])
app.include_router(tags_router, prefix=f"{v1}/tags", tags=["tags"])
app.include_router(admin_router, prefix=f"{v1}/admin", tags=["admin"])


@app.get("/health")
def health(): return {"status": "ok", "version": settings.APP_VERSION}
