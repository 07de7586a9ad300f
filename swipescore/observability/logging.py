"""Structured event logging for commit attempts and outcomes."""

from __future__ import annotations

from swipescore.util.logger import get_logger

_events = get_logger("events")


def log_event(event: str, **payload: object) -> None:
    fields = " ".join(f"{key}={value}" for key, value in sorted(payload.items()))
    _events.info("event=%s %s", event, fields)
