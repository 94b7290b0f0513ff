"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Survey behaviour (pack limits, follow-up thresholds, checkpoint retention)
comes from config/survey_config.yaml. All configuration is validated using
Pydantic.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration and question packs",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/wda.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # Survey
    # ==========================================================================

    survey_language: Literal["de", "en"] = Field(
        default="en", description="Language used for user-facing messages"
    )

    # ==========================================================================
    # AI Providers
    # ==========================================================================

    # API Keys (required for providers you use)
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    google_api_key: Optional[str] = Field(
        default=None, description="Google Generative Language API key"
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434", description="Base URL of a local Ollama server"
    )
    llm_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for a single AI provider call"
    )

    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Survey Configuration (from YAML)
# ============================================================================


class ModeLimits(BaseModel):
    """How many packs a mode draws from the catalog and its expected size."""

    max_packs: Optional[int] = Field(
        default=None, ge=0, description="Leading packs to use (null = all packs)"
    )
    estimated_min_questions: int = Field(default=0, ge=0)
    estimated_max_questions: int = Field(default=0, ge=0)


class ModesConfig(BaseModel):
    """Limits for each survey mode."""

    quick: ModeLimits = Field(
        default_factory=lambda: ModeLimits(
            max_packs=3, estimated_min_questions=20, estimated_max_questions=25
        )
    )
    standard: ModeLimits = Field(
        default_factory=lambda: ModeLimits(
            max_packs=8, estimated_min_questions=45, estimated_max_questions=55
        )
    )
    deep: ModeLimits = Field(
        default_factory=lambda: ModeLimits(
            max_packs=None, estimated_min_questions=85, estimated_max_questions=95
        )
    )


class FollowUpConfig(BaseModel):
    """Follow-up rule evaluation."""

    min_answer_length: int = Field(
        default=20,
        ge=1,
        description="Default threshold for answer_too_short when a rule sets none",
    )


class FreeTalkConfig(BaseModel):
    """Free-form conversation suggestions."""

    suggestion_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Frustration confidence above which free talk is offered",
    )


class CheckpointConfig(BaseModel):
    """Checkpoint cadence and retention."""

    keep_count: int = Field(
        default=5, ge=1, description="Checkpoints retained per session on cleanup"
    )
    auto_save_every_n_answers: int = Field(
        default=5, ge=0, description="Write an auto_save checkpoint every N answers (0 = off)"
    )


class SurveyConfig(BaseModel):
    """
    Complete survey configuration loaded from survey_config.yaml.

    Every section has defaults, so a missing or empty file yields a
    working configuration.
    """

    question_packs_dir: Path = Field(
        default=Path("config/question_packs"),
        description="Directory holding question pack YAML files",
    )
    modes: ModesConfig = Field(default_factory=ModesConfig)
    follow_up: FollowUpConfig = Field(default_factory=FollowUpConfig)
    free_talk: FreeTalkConfig = Field(default_factory=FreeTalkConfig)
    checkpoints: CheckpointConfig = Field(default_factory=CheckpointConfig)

    @field_validator("modes")
    @classmethod
    def estimates_are_ordered(cls, v: ModesConfig) -> ModesConfig:
        """Reject min/max question estimates that are inverted."""
        for name in ("quick", "standard", "deep"):
            limits: ModeLimits = getattr(v, name)
            if limits.estimated_min_questions > limits.estimated_max_questions:
                raise ValueError(
                    f"{name}: estimated_min_questions exceeds estimated_max_questions"
                )
        return v


def load_survey_config(config_path: Optional[Path] = None) -> SurveyConfig:
    """
    Load survey configuration from YAML file.

    Args:
        config_path: Path to survey_config.yaml. If None, looks next to the
            project root, then in the current working directory.

    Returns:
        SurveyConfig with validated settings (defaults if no file is found)

    Raises:
        pydantic.ValidationError: If the file content is invalid
    """
    if config_path is None:
        root_config = (
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "survey_config.yaml"
        )
        cwd_config = Path.cwd() / "config" / "survey_config.yaml"
        if root_config.exists():
            config_path = root_config
        elif cwd_config.exists():
            config_path = cwd_config
        else:
            return SurveyConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return SurveyConfig()

    with open(str(config_path), encoding="utf-8") as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return SurveyConfig()

    survey = SurveyConfig(**config_data)

    # Relative pack directories are resolved against the config file location
    if not survey.question_packs_dir.is_absolute():
        survey.question_packs_dir = (
            config_path.parent.parent / survey.question_packs_dir
        )
    return survey


# Global settings instance
settings = Settings()

# Global survey config instance
survey_config = load_survey_config()
