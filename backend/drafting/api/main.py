"""FastAPI application for the drafting backend."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure

from drafting.api.exceptions import ValidationError
from drafting.api.response import error_json
from drafting.api.routes import documents, draft_queue, health, transcripts
from drafting.db.mongo import close_database
from drafting.llm import LLMError
from drafting.services.errors import (
    DocumentNotFoundError,
    JobNotFoundError,
    ProjectNotFoundError,
    SectionNotFoundError,
)
from drafting.services.storage import DuplicateKeyError, get_storage

logger = logging.getLogger(__name__)

# Domain errors that map straight onto a status and error code
ERROR_STATUS: dict[type[Exception], tuple[int, str]] = {
    ProjectNotFoundError: (404, "PROJECT_NOT_FOUND"),
    JobNotFoundError: (404, "JOB_NOT_FOUND"),
    DocumentNotFoundError: (404, "DOCUMENT_NOT_FOUND"),
    SectionNotFoundError: (404, "SECTION_NOT_FOUND"),
    DuplicateKeyError: (409, "CONFLICT"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await get_storage().ensure_indexes()
    yield
    await close_database()


app = FastAPI(
    title="Ghostwriter Drafting API",
    description="Transcript ingestion, background drafting queue and document merge engine",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error_cls = next(cls for cls in type(exc).__mro__ if cls in ERROR_STATUS)
    status_code, code = ERROR_STATUS[error_cls]
    return error_json(status_code, code, str(exc))


for error_cls in ERROR_STATUS:
    app.add_exception_handler(error_cls, domain_error_handler)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return error_json(400, "VALIDATION_ERROR", exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Path and query errors get the same 400 envelope as body errors."""
    return error_json(400, "VALIDATION_ERROR", str(exc.errors()))


@app.exception_handler(ConnectionFailure)
async def mongo_unavailable_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """Server selection timeouts are a ConnectionFailure subclass."""
    logger.error(f"MongoDB unavailable during {request.method} {request.url.path}: {exc}")
    return error_json(503, "DATABASE_UNAVAILABLE", "Database is not available. Please try again later.")


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    logger.error(f"LLM error surfaced to API: {exc}")
    return error_json(503, "AI_SERVICE_ERROR", "AI service is temporarily unavailable. Please try again.")


app.include_router(health.router)
app.include_router(transcripts.router, prefix="/api")
app.include_router(draft_queue.router, prefix="/api")
app.include_router(documents.router, prefix="/api")
