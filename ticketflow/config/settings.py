"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="TICKETFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    store_backend: str = "memory"  # "memory" or "mongo"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "ticketflow_dev"
    mongo_timeout_ms: int = 5000

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    log_to_file: bool = False

    # SLA policy
    default_sla_days: float = 7.0  # Used when a ticket carries no SLA
    default_ticket_working_days: int = 5  # Used when an SLA string cannot be parsed
    hours_per_working_day: int = 8
    sla_exceeded_ratio: float = 0.3  # Faster than this share of the SLA counts as "exceeded"
    per_step_sla_tracking: bool = False

    # Reverts
    strict_revert_targets: bool = True

    # Scheduler
    overdue_sweep_interval_seconds: int = 300

    # Attachments
    attachments_max_mb: int = 10
    allowed_mime_types: str = "application/pdf,image/png,image/jpeg,image/gif,application/msword,application/vnd.openxmlformats-officedocument.wordprocessingml.document,text/plain,text/csv"

    # Environment
    environment: str = "development"

    @property
    def allowed_mime_types_list(self) -> List[str]:
        """Parse allowed mime types string to list"""
        return [mime.strip() for mime in self.allowed_mime_types.split(",") if mime.strip()]

    @property
    def attachments_max_bytes(self) -> int:
        """Max attachment size in bytes"""
        return self.attachments_max_mb * 1024 * 1024

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
