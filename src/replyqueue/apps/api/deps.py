from __future__ import annotations

from functools import lru_cache

from replyqueue.config import Settings, load_settings
from replyqueue.core.activity.log import ActivityLog
from replyqueue.core.confirm.completion import CompletionService
from replyqueue.core.confirm.oracle import ConfirmationOracle
from replyqueue.core.queue.selector import ClaimSelector
from replyqueue.core.queue.store import TaskStore
from replyqueue.core.webhook.intake import WebhookIntake


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_task_store() -> TaskStore:
    settings = get_settings()
    return TaskStore(
        task_dir=settings.resolved_task_dir,
        selector=ClaimSelector(window=settings.claim_window),
        default_account=settings.default_account,
    )


@lru_cache(maxsize=1)
def get_activity_log() -> ActivityLog:
    return ActivityLog(log_dir=get_settings().resolved_activity_log_dir)


@lru_cache(maxsize=1)
def get_oracle() -> ConfirmationOracle:
    settings = get_settings()
    return ConfirmationOracle(
        log_dir=settings.resolved_activity_log_dir,
        segments=settings.confirm_segments,
        tail_bytes=settings.confirm_tail_bytes,
        radius_bytes=settings.confirm_radius_bytes,
    )


@lru_cache(maxsize=1)
def get_completion_service() -> CompletionService:
    return CompletionService(store=get_task_store(), oracle=get_oracle())


@lru_cache(maxsize=1)
def get_webhook_intake() -> WebhookIntake:
    settings = get_settings()
    return WebhookIntake(
        store=get_task_store(),
        activity_log=get_activity_log(),
        default_reply=settings.default_reply,
        trigger_patterns=settings.trigger_patterns,
    )


def clear_caches() -> None:
    for getter in (
        get_settings,
        get_task_store,
        get_activity_log,
        get_oracle,
        get_completion_service,
        get_webhook_intake,
    ):
        getter.cache_clear()
