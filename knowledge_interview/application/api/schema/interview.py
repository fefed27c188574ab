from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from knowledge_interview.domain.models.interview_state import (
    GeneratedInstance, ThresholdMetrics, WorkflowState
)


class StartSessionRequest(BaseModel):
    """Start or resume the interview in a browser tab"""
    tab_id: str = Field(..., min_length=1, max_length=128, description="Client tab identifier")


class SubmitAnswerRequest(BaseModel):
    """Answer to the question currently awaiting a reply"""
    session_id: str = Field(..., min_length=1, description="Session the answer belongs to")
    answer: str = Field(..., description="Free-text answer")


class ProgressData(BaseModel):
    """Interview progress for split-view reporting"""
    questions_answered: int
    skills_identified: int
    workflows_captured: int
    threshold_score: float
    max_questions: int


class StartSessionResponse(BaseModel):
    session_id: str
    tab_id: str
    first_question: str
    state: WorkflowState
    progress: ProgressData


class SubmitAnswerResponse(BaseModel):
    session_id: str
    is_complete: bool
    next_question: Optional[str] = None
    generated_instances: List[GeneratedInstance] = Field(default_factory=list)
    dataset_id: Optional[str] = None
    progress: ProgressData
    threshold_metrics: ThresholdMetrics
    skills_extracted: List[str] = Field(default_factory=list)
    workflows_identified: List[str] = Field(default_factory=list)


class SessionSummary(BaseModel):
    """One active tab"""
    tab_id: str
    session_id: str
    state: WorkflowState
    progress: ProgressData
    last_activity: datetime


class ErrorResponse(BaseModel):
    """Error body returned for interview failures"""
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
