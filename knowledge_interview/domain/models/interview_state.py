from typing import Dict, Any, List, Optional, Set
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
import uuid


class WorkflowState(str, Enum):
    """Interview workflow states"""
    INTERVIEW = "interview"
    THRESHOLD_CHECK = "threshold_check"
    GENERATE_INSTANCES = "generate_instances"
    CONTEXT_UPDATE = "context_update"
    COMPLETE = "complete"
    ERROR = "error"


class SubscriptionTier(str, Enum):
    """Billing tiers with different daily generation quotas"""
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Difficulty(str, Enum):
    """Difficulty levels for generated instances"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ConversationTurn(BaseModel):
    """One answered question"""
    question: str
    answer: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    skills_extracted: List[str] = Field(default_factory=list)
    workflows_identified: List[str] = Field(default_factory=list)


class ThresholdMetrics(BaseModel):
    """Saturation score breakdown, each component within its weight"""
    conversation_depth: float = 0.0
    skill_diversity: float = 0.0
    workflow_complexity: float = 0.0
    context_richness: float = 0.0
    overall_score: float = 0.0


class ExtractionContext(BaseModel):
    """Session signal an instance was generated from"""
    skills_referenced: List[str] = Field(default_factory=list)
    workflow_elements: List[str] = Field(default_factory=list)
    conversation_turn: int = 0


class GeneratedInstance(BaseModel):
    """A question/answer record produced from a saturated interview"""
    question: str = Field(description="Question a practitioner would ask")
    answer: str = Field(description="Answer grounded in the interview")
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    difficulty: Difficulty = Field(default=Difficulty.INTERMEDIATE)
    confidence_score: float = Field(default=50.0, ge=0, le=100)
    session_id: Optional[str] = None
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    extraction_context: ExtractionContext = Field(default_factory=ExtractionContext)


class UserProfile(BaseModel):
    """Durable per-user knowledge profile"""
    user_id: str
    global_context: str = ""
    extracted_skills: Set[str] = Field(default_factory=set)
    identified_workflows: Set[str] = Field(default_factory=set)
    display_name: Optional[str] = None
    headline: Optional[str] = None
    subscription_tier: SubscriptionTier = Field(default=SubscriptionTier.BASIC)

    def summary(self) -> str:
        """Short text rendering used in interview prompts"""
        parts = []
        if self.display_name:
            parts.append(f"Name: {self.display_name}")
        if self.headline:
            parts.append(f"Headline: {self.headline}")
        if self.extracted_skills:
            parts.append(f"Known skills: {', '.join(sorted(self.extracted_skills))}")
        if self.identified_workflows:
            parts.append(f"Known workflows: {', '.join(sorted(self.identified_workflows))}")
        return "\n".join(parts) if parts else "No profile information yet"


class ProfileUpdate(BaseModel):
    """Partial profile write; collections are union-merged by the store"""
    global_context: Optional[str] = None
    extracted_skills: Set[str] = Field(default_factory=set)
    identified_workflows: Set[str] = Field(default_factory=set)


class InterviewSession(BaseModel):
    """One user's interview scoped to one tab"""
    user_id: str
    tab_id: str
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    state: WorkflowState = Field(default=WorkflowState.INTERVIEW)
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    current_question: str = ""
    global_context: str = ""
    profile_summary: str = ""
    extracted_skills: Set[str] = Field(default_factory=set)
    identified_workflows: Set[str] = Field(default_factory=set)
    threshold_metrics: ThresholdMetrics = Field(default_factory=ThresholdMetrics)
    generation_ready: bool = False
    generated_instances: List[GeneratedInstance] = Field(default_factory=list)
    dataset_id: Optional[str] = None
    compaction_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_complete(self) -> bool:
        return self.state == WorkflowState.COMPLETE

    def update_state(self, state: WorkflowState):
        """Move to a new workflow state"""
        self.state = state
        self.last_activity = datetime.utcnow()

    def merge_signal(self, skills: Set[str], workflows: Set[str]):
        """Union newly found skills and workflows into the session"""
        self.extracted_skills |= set(skills)
        self.identified_workflows |= set(workflows)

    def record_turn(self, turn: ConversationTurn):
        """Append an answered question and fold it into the running context"""
        self.conversation_history.append(turn)
        entry = f"Q: {turn.question}\nA: {turn.answer}"
        self.global_context = f"{self.global_context}\n\n{entry}" if self.global_context else entry
        self.merge_signal(set(turn.skills_extracted), set(turn.workflows_identified))
        self.current_question = ""
        self.last_activity = datetime.utcnow()

    def recent_turns(self, count: int) -> List[ConversationTurn]:
        return self.conversation_history[-count:] if count > 0 else []

    def get_progress(self, max_questions: int) -> Dict[str, Any]:
        """Progress payload for split-view reporting"""
        return {
            "questions_answered": len(self.conversation_history),
            "skills_identified": len(self.extracted_skills),
            "workflows_captured": len(self.identified_workflows),
            "threshold_score": round(self.threshold_metrics.overall_score, 2),
            "max_questions": max_questions
        }

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "turns": len(self.conversation_history),
            "skills": len(self.extracted_skills),
            "workflows": len(self.identified_workflows),
            "context_length": len(self.global_context),
            "overall_score": round(self.threshold_metrics.overall_score, 2),
            "generation_ready": self.generation_ready
        }

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly copy with sets rendered as sorted lists"""
        data = self.model_dump(mode="json")
        data["extracted_skills"] = sorted(self.extracted_skills)
        data["identified_workflows"] = sorted(self.identified_workflows)
        data["is_complete"] = self.is_complete
        return data
