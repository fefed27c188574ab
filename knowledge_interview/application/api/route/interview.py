from typing import Annotated, Any, Dict, List
from fastapi import APIRouter, Depends, Header, Request, Response, status
import structlog

from knowledge_interview.domain.orchestration.core.interview_service import InterviewService
from ..schema.interview import (
    SessionSummary, StartSessionRequest, StartSessionResponse,
    SubmitAnswerRequest, SubmitAnswerResponse
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/interview", tags=["interview"])


def get_interview_service(request: Request) -> InterviewService:
    """Service built at startup and kept on the app state"""
    return request.app.state.interview_service


async def get_user_id(x_user_id: Annotated[str, Header(min_length=1)]) -> str:
    """Caller identity; authentication happens upstream"""
    structlog.contextvars.bind_contextvars(user_id=x_user_id)
    return x_user_id


ServiceDep = Annotated[InterviewService, Depends(get_interview_service)]
UserDep = Annotated[str, Depends(get_user_id)]


@router.post("/sessions", response_model=StartSessionResponse)
async def start_session(body: StartSessionRequest, user_id: UserDep, service: ServiceDep):
    """Start or resume the interview for a tab"""

    result = await service.start_session(user_id, body.tab_id)
    return StartSessionResponse(tab_id=body.tab_id, **result.model_dump())


@router.post("/sessions/{tab_id}/answers", response_model=SubmitAnswerResponse)
async def submit_answer(tab_id: str, body: SubmitAnswerRequest, user_id: UserDep, service: ServiceDep):
    """Submit an answer to the waiting question"""

    result = await service.submit_answer(user_id, tab_id, body.session_id, body.answer)
    return SubmitAnswerResponse(**result.model_dump())


@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(user_id: UserDep, service: ServiceDep):
    """All active tabs of the caller"""

    return await service.list_sessions(user_id)


@router.get("/sessions/{tab_id}")
async def get_status(tab_id: str, user_id: UserDep, service: ServiceDep) -> Dict[str, Any]:
    """Snapshot of the tab's session"""

    return await service.get_status(user_id, tab_id)


@router.post("/sessions/{tab_id}/reset", response_model=StartSessionResponse)
async def reset_session(tab_id: str, user_id: UserDep, service: ServiceDep):
    """Discard the tab's interview and start over"""

    result = await service.reset_session(user_id, tab_id)
    return StartSessionResponse(tab_id=tab_id, **result.model_dump())


@router.delete("/sessions/{tab_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(tab_id: str, user_id: UserDep, service: ServiceDep):
    """Close the tab's interview and save what it learned"""

    await service.close_session(user_id, tab_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
