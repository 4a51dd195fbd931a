"""
Worker Configuration

Environment-based configuration for the retouch worker.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


# =============================================================================
# Model Presets - Gemini models used by each pipeline stage
# =============================================================================

MODEL_PRESETS = {
    "flash": {
        "analyzer": "gemini-2.5-flash",
        "editor": "gemini-2.5-flash-image",
        "validator": "gemini-2.5-flash",
        "critic": "gemini-2.5-flash",
        "description": "Gemini 2.5 Flash + Flash Image (Nano Banana)",
    },
    "pro": {
        "analyzer": "gemini-2.5-pro",
        "editor": "gemini-3-pro-image-preview",
        "validator": "gemini-2.5-pro",
        "critic": "gemini-2.5-pro",
        "description": "Pro analysis with Gemini 3 Pro Image editing",
    },
}


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    # Worker identity
    worker_id: str = "retouch-worker-1"

    # API connection (empty = don't sync status)
    api_url: str = ""

    # Redis
    redis_url: str = "redis://localhost:6383"

    # MinIO / S3
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "retouch"
    minio_secure: bool = False
    output_url_expiry: int = 7 * 24 * 3600  # images are retained for 7 days

    # Gemini
    google_ai_api_key: str = ""
    model_preset: str = "flash"

    @property
    def analyzer_model(self) -> str:
        return self._preset()["analyzer"]

    @property
    def editor_model(self) -> str:
        return self._preset()["editor"]

    @property
    def validator_model(self) -> str:
        return self._preset()["validator"]

    @property
    def critic_model(self) -> str:
        return self._preset()["critic"]

    def _preset(self) -> dict:
        """Get model preset, with fallback to flash."""
        return MODEL_PRESETS.get(self.model_preset, MODEL_PRESETS["flash"])

    # Sequential pipeline
    max_retries_per_step: int = Field(default=3, ge=1)
    parallel_pipelines: int = Field(default=5, ge=1)
    min_naturalness_score: int = Field(default=60, ge=0, le=100)

    # Timeouts (seconds), one budget per external call
    analysis_timeout: float = 30.0
    editing_timeout: float = 120.0
    validation_timeout: float = 30.0
    critique_timeout: float = 30.0

    # Optional stages
    planner_enabled: bool = False
    final_review_enabled: bool = False

    # Progress reporting
    progress_queue_size: int = Field(default=64, ge=1)
    estimated_analyzing_seconds: float = 5.0
    estimated_planning_seconds: float = 5.0
    estimated_generating_seconds: float = 20.0  # per step
    estimated_validating_seconds: float = 5.0  # per step

    # Placeholder shown for failed variations
    fallback_image_url: str = "https://picsum.photos/seed/{seed}/400/500"

    # Polling
    poll_interval: float = 5.0  # seconds

    # Metrics
    metrics_port: int = 9090
    pushgateway_url: str = ""  # Empty = local HTTP server, set to pushgateway URL for remote
    metrics_push_interval: float = 15.0  # seconds

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
