"""
Environment-specific runtime settings.

Defaults match the production job cadence; every value can be overridden
through environment variables on the Lambda.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass
class Settings:
    """Runtime settings for the request path and scheduled jobs."""

    environment: str = "dev"

    # Persistence
    database_url: Optional[str] = None
    db_secret_arn: Optional[str] = None

    # Collaborators
    model_id: str = "anthropic.claude-3-haiku-20240307-v1:0"
    aws_region: str = "eu-west-2"
    email_from: str = "support@example.com"
    llm_timeout_seconds: float = 5.0
    cron_secret: Optional[str] = None

    # Lifecycle jobs
    follow_up_batch_size: int = 50
    follow_up_email_enabled: bool = True
    auto_close_batch_size: int = 100
    stalled_hours: int = 24
    stalled_candidate_limit: int = 200
    max_revivals_per_run: int = 50
    revival_cooldown_days: int = 3
    checkin_days_after_resolution: int = 5
    max_checkins_per_run: int = 50
    checkin_candidate_limit: int = 200
    sla_sweep_batch_size: int = 200

    # Health scoring
    health_window_days: int = 90
    alert_cooldown_days: int = 7

    # Calibration
    calibration_window_days: int = 30
    calibration_min_samples: int = 5
    default_confidence_threshold: float = 0.7
    threshold_cache_ttl_seconds: int = 300

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            environment=os.environ.get("ENVIRONMENT", "dev"),
            database_url=os.environ.get("DATABASE_URL") or None,
            db_secret_arn=os.environ.get("DB_SECRET_ARN") or None,
            model_id=os.environ.get("MODEL_ID", cls.model_id),
            aws_region=(
                os.environ.get("BEDROCK_REGION")
                or os.environ.get("AWS_REGION")
                or cls.aws_region
            ),
            email_from=os.environ.get("EMAIL_FROM", cls.email_from),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", cls.llm_timeout_seconds),
            cron_secret=os.environ.get("CRON_SECRET") or None,
            follow_up_batch_size=_env_int("FOLLOW_UP_BATCH_SIZE", cls.follow_up_batch_size),
            follow_up_email_enabled=os.environ.get("FOLLOW_UP_EMAIL_ENABLED", "true").lower()
            == "true",
            auto_close_batch_size=_env_int("AUTO_CLOSE_BATCH_SIZE", cls.auto_close_batch_size),
            stalled_hours=_env_int("STALLED_HOURS", cls.stalled_hours),
            max_revivals_per_run=_env_int("MAX_REVIVALS_PER_RUN", cls.max_revivals_per_run),
            revival_cooldown_days=_env_int("REVIVAL_COOLDOWN_DAYS", cls.revival_cooldown_days),
            checkin_days_after_resolution=_env_int(
                "CHECKIN_DAYS_AFTER_RESOLUTION", cls.checkin_days_after_resolution
            ),
            max_checkins_per_run=_env_int("MAX_CHECKINS_PER_RUN", cls.max_checkins_per_run),
            checkin_candidate_limit=_env_int(
                "CHECKIN_CANDIDATE_LIMIT", cls.checkin_candidate_limit
            ),
            sla_sweep_batch_size=_env_int("SLA_SWEEP_BATCH_SIZE", cls.sla_sweep_batch_size),
            stalled_candidate_limit=_env_int(
                "STALLED_CANDIDATE_LIMIT", cls.stalled_candidate_limit
            ),
            health_window_days=_env_int("HEALTH_WINDOW_DAYS", cls.health_window_days),
            alert_cooldown_days=_env_int("ALERT_COOLDOWN_DAYS", cls.alert_cooldown_days),
            calibration_window_days=_env_int(
                "CALIBRATION_WINDOW_DAYS", cls.calibration_window_days
            ),
            calibration_min_samples=_env_int(
                "CALIBRATION_MIN_SAMPLES", cls.calibration_min_samples
            ),
            default_confidence_threshold=_env_float(
                "DEFAULT_CONFIDENCE_THRESHOLD", cls.default_confidence_threshold
            ),
            threshold_cache_ttl_seconds=_env_int(
                "THRESHOLD_CACHE_TTL_SECONDS", cls.threshold_cache_ttl_seconds
            ),
        )
