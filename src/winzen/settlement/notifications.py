"""Notification content for settlement. Delivery is someone else's job."""

from __future__ import annotations

from typing import Callable

import structlog

from winzen.models import Notification

log = structlog.get_logger(__name__)

NotificationSink = Callable[[Notification], None]


def log_sink(notification: Notification) -> None:
    """Default sink: record the message in the log."""
    log.info(
        "notification",
        user_id=notification.user_id,
        kind=notification.kind,
        market_id=notification.market_id,
        message=notification.message,
    )


def win_message(title: str, payout: int) -> str:
    return f'You won {payout:,} coins on "{title}"!'


def loss_message(title: str, winning_label: str) -> str:
    return f'"{title}" resolved {winning_label}. Your bet didn\'t win this time.'


def near_miss_message(title: str, credit: int) -> str:
    return f'So close! "{title}" went the other way. Here are {credit} coins for a strong call.'


def creator_message(title: str, refunded: int, reward: int) -> str:
    parts = []
    if refunded:
        parts.append(f"deposit of {refunded:,} refunded")
    if reward:
        parts.append(f"{reward:,} coin creator reward")
    detail = " and ".join(parts) if parts else "no refund or reward this time"
    return f'Your market "{title}" resolved: {detail}.'
