from .skill_extractor import (
    ExtractionResult, extract, extract_skills, extract_workflows, extract_key_topics
)

__all__ = ["ExtractionResult", "extract", "extract_skills", "extract_workflows", "extract_key_topics"]
