"""
Lazily constructed services shared by every route of the Lambda.

Nothing touches the database or AWS at import time; the first request builds
the store and collaborators and warm invocations reuse them. Tests call
``configure`` to inject a store, clock or fake collaborators.
"""

from __future__ import annotations

from typing import Any, Callable, Dict


_instances: Dict[str, Any] = {}


def configure(**overrides: Any) -> None:
    """Drop cached instances and pin the given ones (store, clock, settings, ...)."""
    _instances.clear()
    _instances.update(overrides)


def reset() -> None:
    _instances.clear()


def _get(name: str, factory: Callable[[], Any]) -> Any:
    if name not in _instances:
        _instances[name] = factory()
    return _instances[name]


def get_settings():
    from utils.settings import Settings

    return _get("settings", Settings.from_environment)


def get_clock():
    from utils.clock import SystemClock

    return _get("clock", SystemClock)


def get_store():
    from repositories.factory import build_ticket_store

    return _get("store", lambda: build_ticket_store(get_settings()))


def get_language_model():
    def build():
        from services.language_model import BedrockLanguageModel

        settings = get_settings()
        return BedrockLanguageModel(model_id=settings.model_id, region=settings.aws_region)

    return _get("language_model", build)


def get_emailer():
    def build():
        from services.email_service import SesEmailer

        settings = get_settings()
        return SesEmailer(sender=settings.email_from, region=settings.aws_region)

    return _get("emailer", build)


def get_thresholds():
    def build():
        from services.escalation_policy import ThresholdProvider

        return ThresholdProvider(
            get_store(), ttl_seconds=get_settings().threshold_cache_ttl_seconds
        )

    return _get("thresholds", build)


def get_ticket_service():
    def build():
        from services.ticket_service import TicketService

        return TicketService(
            get_store(),
            language_model=get_language_model(),
            thresholds=get_thresholds(),
            clock=get_clock(),
            settings=get_settings(),
        )

    return _get("ticket_service", build)


def get_handoff_coordinator():
    def build():
        from services.handoff_service import HandoffCoordinator
        from services.notifier import StoreNotifier

        notifier = StoreNotifier(get_store(), clock=get_clock())
        return HandoffCoordinator(get_store(), notifier, clock=get_clock())

    return _get("handoff_coordinator", build)


def get_scheduler():
    def build():
        from services.lifecycle_scheduler import LifecycleScheduler

        return LifecycleScheduler(
            get_store(),
            language_model=get_language_model(),
            emailer=get_emailer(),
            clock=get_clock(),
            settings=get_settings(),
        )

    return _get("scheduler", build)


def get_health_scorer():
    def build():
        from services.health_scorer import HealthScorer

        return HealthScorer(get_store(), clock=get_clock(), settings=get_settings())

    return _get("health_scorer", build)


def get_calibration_job():
    def build():
        from services.calibration_service import CalibrationJob

        return CalibrationJob(
            get_store(), thresholds=get_thresholds(), clock=get_clock(), settings=get_settings()
        )

    return _get("calibration_job", build)
