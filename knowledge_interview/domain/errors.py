from typing import Dict, Any, Optional


class InterviewError(Exception):
    """Base class for all session-local interview failures"""

    code = "interview_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for API responses and logs"""
        return {
            "error_code": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(InterviewError):
    """Malformed caller input, rejected before the engine runs"""
    code = "validation_error"


class ProviderError(InterviewError):
    """Text generation failed or exhausted its retries"""
    code = "provider_error"


class ParseError(InterviewError):
    """Model output was not structurally valid"""
    code = "parse_error"


class QuotaExceededError(InterviewError):
    """User has no remaining generation quota"""
    code = "quota_exceeded"


class RateLimitError(QuotaExceededError):
    """Quota gate throttled the request"""
    code = "rate_limited"


class SessionNotFoundError(InterviewError):
    """Session expired, was closed, or never existed"""
    code = "session_not_found"


class InvalidTransitionError(InterviewError):
    """Event is not accepted in the current workflow state"""
    code = "invalid_transition"


class PersistenceError(InterviewError):
    """Durable store rejected a write"""
    code = "persistence_error"
