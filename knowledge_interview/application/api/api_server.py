from typing import Dict, Optional, Type
from datetime import datetime
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from knowledge_interview.domain.context.context_compactor import ContextCompactor
from knowledge_interview.domain.context.memory.instance_memory_store import InMemoryInstanceStore
from knowledge_interview.domain.context.memory.profile_memory_store import InMemoryProfileStore
from knowledge_interview.domain.context.state.session_registry import SessionRegistry
from knowledge_interview.domain.errors import (
    InterviewError, InvalidTransitionError, ParseError, PersistenceError, ProviderError,
    QuotaExceededError, SessionNotFoundError, ValidationError
)
from knowledge_interview.domain.orchestration.core.interview_service import InterviewService
from knowledge_interview.domain.orchestration.workflow.workflow_engine import WorkflowEngine
from knowledge_interview.domain.ports.collaborators import (
    DurableInstanceStore, DurableProfileStore, QuotaGate, TextCompletion
)
from knowledge_interview.infrastructure.billing.quota_gate import InMemoryQuotaGate
from knowledge_interview.infrastructure.config.settings import Settings, load_settings
from knowledge_interview.infrastructure.llm.openai_completion import OpenAICompletion
from knowledge_interview.infrastructure.observability.logging import metrics, setup_logging
from .route.interview import router as interview_router
from .schema.interview import ErrorResponse

logger = structlog.get_logger(__name__)


ERROR_STATUS: Dict[Type[InterviewError], int] = {
    ValidationError: 422,
    SessionNotFoundError: 404,
    QuotaExceededError: 429,
    InvalidTransitionError: 409,
    ProviderError: 502,
    ParseError: 502,
    PersistenceError: 502,
}


def status_for(error: InterviewError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return 500


def build_interview_service(
    settings: Settings,
    completion: Optional[TextCompletion] = None,
    quota_gate: Optional[QuotaGate] = None,
    profile_store: Optional[DurableProfileStore] = None,
    instance_store: Optional[DurableInstanceStore] = None
) -> InterviewService:
    """Wire the registry, engine and collaborators into a service"""

    if completion is None:
        completion = OpenAICompletion(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url
        )

    profile_store = profile_store or InMemoryProfileStore()
    compactor = ContextCompactor(
        completion,
        max_context_size=settings.max_context_size,
        compact_ratio=settings.compact_ratio,
        timeout_s=settings.compaction_timeout_s,
        attempts=settings.compaction_attempts,
        backoff_base=settings.backoff_base_s,
        temperature=settings.compaction_temperature
    )
    engine = WorkflowEngine(
        completion=completion,
        quota_gate=quota_gate or InMemoryQuotaGate(profile_store=profile_store),
        profile_store=profile_store,
        instance_store=instance_store or InMemoryInstanceStore(),
        compactor=compactor,
        settings=settings
    )
    return InterviewService(SessionRegistry(profile_store), engine, settings)


def create_app(
    settings: Optional[Settings] = None,
    completion: Optional[TextCompletion] = None,
    **collaborators
) -> FastAPI:
    """Create the interview API; collaborators default to in-memory adapters"""

    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    app = FastAPI(title="Knowledge Interview API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(interview_router)

    @app.on_event("startup")
    async def startup_event():
        """Build the session registry and interview service"""
        app.state.interview_service = build_interview_service(settings, completion, **collaborators)
        logger.info("Interview service started", model=settings.openai_model)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Flush every open session to durable storage"""
        service: InterviewService = app.state.interview_service
        closed = await service.registry.flush_all()
        logger.info("Interview service shutdown", sessions_flushed=closed)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request.headers.get("X-Request-ID", str(uuid.uuid4())),
            service=settings.service_name
        )
        return await call_next(request)

    @app.exception_handler(InterviewError)
    async def interview_error_handler(request: Request, exc: InterviewError):
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.info
        log("Interview request failed", path=request.url.path, error_code=exc.code, error=exc.message)
        body = ErrorResponse(error_code=exc.code, message=exc.message, details=exc.details)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        service: Optional[InterviewService] = getattr(app.state, "interview_service", None)
        return {
            "status": "healthy",
            "active_sessions": service.registry.active_count() if service else 0,
            "metrics": metrics.summary(),
            "timestamp": datetime.utcnow().isoformat()
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
