"""Service configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Interview engine settings, read from INTERVIEW_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INTERVIEW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    service_name: str = "knowledge-interview"
    log_level: str = "INFO"
    log_format: str = "json"

    # Text generation
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""
    question_timeout_s: float = 10.0
    question_max_tokens: int = 200
    question_temperature: float = 0.8
    generation_timeout_s: float = 30.0
    generation_max_tokens: int = 4000
    generation_temperature: float = 0.7
    compaction_timeout_s: float = 20.0
    compaction_temperature: float = 0.3
    provider_attempts: int = 2
    compaction_attempts: int = 1
    backoff_base_s: float = 0.5

    # Interview flow
    max_turns: int = 25
    min_answer_length: int = 15
    recent_turns: int = 3
    instances_per_session: int = 10

    # Context
    max_context_size: int = 16000
    compact_ratio: float = 0.6

    # Instance validation
    min_instance_question_length: int = 20
    min_instance_answer_length: int = 100


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, applying explicit overrides."""
    return Settings(**overrides)
