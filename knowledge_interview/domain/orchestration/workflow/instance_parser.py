from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
import json
import re

import jsonschema
import structlog
from pydantic import ValidationError as PydanticValidationError

from knowledge_interview.domain.models.interview_state import GeneratedInstance

logger = structlog.get_logger(__name__)


# Envelope check: the whole reply must be an array of objects
RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {"type": "object"}
}


def candidate_schema(min_question_length: int, min_answer_length: int) -> Dict[str, Any]:
    """Schema a single candidate must satisfy to be kept"""
    return {
        "type": "object",
        "required": ["question", "answer"],
        "properties": {
            "question": {"type": "string", "minLength": min_question_length},
            "answer": {"type": "string", "minLength": min_answer_length},
            "tags": {"type": "array", "items": {"type": "string"}},
            "category": {"type": ["string", "null"]},
            "difficulty": {"enum": ["beginner", "intermediate", "advanced"]},
            "confidence_score": {"type": "number", "minimum": 0, "maximum": 100}
        }
    }


_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


@dataclass
class ParseResult:
    """Success/failure result of parsing generated instances"""
    ok: bool
    instances: List[GeneratedInstance] = field(default_factory=list)
    error: Optional[str] = None
    dropped: int = 0


def _strip_fences(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1) if match else text.strip()


def _has_label(candidate: Dict[str, Any]) -> bool:
    tags = [t for t in candidate.get("tags") or [] if t.strip()]
    category = (candidate.get("category") or "").strip()
    return bool(tags or category)


def _normalized(candidate: Any) -> Any:
    # Length limits apply to the trimmed text
    if not isinstance(candidate, dict):
        return candidate
    return {
        key: value.strip() if key in ("question", "answer") and isinstance(value, str) else value
        for key, value in candidate.items()
    }


def parse_instances(
    raw: str,
    min_question_length: int = 20,
    min_answer_length: int = 100
) -> ParseResult:
    """Parse and validate a model reply into instances.

    The reply must be a JSON array of objects, otherwise the whole attempt
    fails. Individual candidates that do not validate are dropped.
    """
    try:
        payload = json.loads(_strip_fences(raw or ""))
    except json.JSONDecodeError as e:
        return ParseResult(ok=False, error=f"Reply is not valid JSON: {e.msg}")

    try:
        jsonschema.validate(payload, RESPONSE_SCHEMA)
    except jsonschema.ValidationError as e:
        return ParseResult(ok=False, error=f"Reply is not an array of objects: {e.message}")

    validator = jsonschema.Draft7Validator(candidate_schema(min_question_length, min_answer_length))
    instances = []
    dropped = 0
    for candidate in map(_normalized, payload):
        if not validator.is_valid(candidate) or not _has_label(candidate):
            dropped += 1
            continue
        try:
            instances.append(GeneratedInstance(
                question=candidate["question"],
                answer=candidate["answer"],
                tags=[t.strip() for t in candidate.get("tags") or [] if t.strip()],
                category=(candidate.get("category") or "").strip() or None,
                difficulty=candidate.get("difficulty", "intermediate"),
                confidence_score=candidate.get("confidence_score", 50)
            ))
        except PydanticValidationError:
            dropped += 1

    if dropped:
        logger.info("Dropped invalid instance candidates", dropped=dropped, kept=len(instances))

    if not instances:
        return ParseResult(ok=False, error="Reply contained no valid instances", dropped=dropped)

    return ParseResult(ok=True, instances=instances, dropped=dropped)
