from .interview_state import (
    WorkflowState, SubscriptionTier, Difficulty, ConversationTurn,
    ThresholdMetrics, ExtractionContext, GeneratedInstance, UserProfile,
    ProfileUpdate, InterviewSession
)

__all__ = [
    "WorkflowState", "SubscriptionTier", "Difficulty", "ConversationTurn",
    "ThresholdMetrics", "ExtractionContext", "GeneratedInstance", "UserProfile",
    "ProfileUpdate", "InterviewSession"
]
