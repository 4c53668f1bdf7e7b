from __future__ import annotations

import logging
import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

# env var name -> Settings field
_ENV_FIELDS: Dict[str, str] = {
    "STORAGE_TYPE": "storage_type",
    "STORAGE_PATH": "storage_path",
    "S3_BUCKET": "s3_bucket",
    "S3_ENDPOINT_URL": "s3_endpoint_url",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_MODEL": "openai_model",
    "OPENAI_IMAGE_MODEL": "openai_image_model",
    "LLM_MAX_TOKENS": "llm_max_tokens",
    "LLM_TEMPERATURE": "llm_temperature",
    "MAX_CONCURRENT_INSTANCES": "max_concurrent_instances",
    "MAX_CONCURRENT_ACTIVITIES": "max_concurrent_activities",
    "ACTIVITY_TIMEOUT_SECONDS": "activity_timeout",
    "HEARTBEAT_INTERVAL_SECONDS": "heartbeat_interval",
    "HEARTBEAT_TIMEOUT_SECONDS": "heartbeat_timeout",
    "RETRY_INITIAL_INTERVAL_SECONDS": "retry_initial_interval",
    "RETRY_BACKOFF_COEFFICIENT": "retry_backoff_coefficient",
    "RETRY_MAXIMUM_INTERVAL_SECONDS": "retry_maximum_interval",
    "RETRY_MAXIMUM_ATTEMPTS": "retry_maximum_attempts",
    "FINISHED_INSTANCE_RETENTION": "finished_instance_retention",
    "CHECKPOINT_SQLITE_PATH": "checkpoint_path",
    "DISABLE_CHECKPOINT": "disable_checkpoint",
    "ENABLE_COST_TRACKING": "enable_cost_tracking",
    "OPENAI_COST_PER_1K_TOKENS_INPUT": "cost_per_1k_input",
    "OPENAI_COST_PER_1K_TOKENS_OUTPUT": "cost_per_1k_output",
    "OPENAI_IMAGE_COST_PER_IMAGE": "cost_per_image",
    "DEFAULT_REPORT_STYLE": "default_report_style",
    "DEFAULT_OUTPUT_FORMAT": "default_output_format",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Process-wide configuration, loaded once at start and passed explicitly."""

    storage_type: Literal["local", "s3"] = "local"
    storage_path: str = "./storage"
    s3_bucket: str = "reportflow"
    s3_endpoint_url: Optional[str] = None

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_image_model: str = "dall-e-3"
    llm_max_tokens: int = Field(default=4096, gt=0)
    llm_temperature: float = Field(default=0.7, ge=0, le=2)

    max_concurrent_instances: int = Field(default=10, gt=0)
    max_concurrent_activities: int = Field(default=20, gt=0)
    activity_timeout: float = Field(default=600.0, gt=0)
    heartbeat_interval: float = Field(default=5.0, gt=0)
    heartbeat_timeout: float = Field(default=30.0, gt=0)

    retry_initial_interval: float = Field(default=1.0, ge=0)
    retry_backoff_coefficient: float = Field(default=2.0, ge=1)
    retry_maximum_interval: float = Field(default=30.0, ge=0)
    retry_maximum_attempts: int = Field(default=3, gt=0)
    finished_instance_retention: int = Field(default=100, ge=0)

    checkpoint_path: str = "graph.ckpt.sqlite"
    disable_checkpoint: bool = False

    enable_cost_tracking: bool = True
    cost_per_1k_input: float = Field(default=0.005, ge=0)
    cost_per_1k_output: float = Field(default=0.015, ge=0)
    cost_per_image: float = Field(default=0.040, ge=0)

    default_report_style: Literal["business", "research", "technical"] = "business"
    default_output_format: Literal["PDF", "DOCX", "HTML"] = "PDF"
    log_level: str = "INFO"

    @field_validator("storage_type", mode="before")
    @classmethod
    def _storage_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "minio":
                return "s3"
        return value

    @field_validator("default_output_format", "log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("s3_endpoint_url", "openai_api_key", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def load_settings(environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> Settings:
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = env.get(env_name)
        if raw is not None:
            values[field_name] = raw
    values.update(overrides)
    try:
        return Settings(**values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise ValueError(f"Invalid environment variables: {problems}") from exc


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    root.setLevel(level)
