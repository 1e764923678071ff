from __future__ import annotations

import json

import structlog
from services.portal.app.utils.logging import build_processors


def _render(processors: list, event: dict) -> str:
    for processor in processors:
        event = processor(None, "error", event)
    return event


def test_json_logs_carry_the_traceback() -> None:
    processors = build_processors(json_logs=True)

    try:
        raise ValueError("recorder exploded")
    except ValueError:
        rendered = _render(processors, {"event": "Failed to record cart event", "exc_info": True})

    data = json.loads(rendered)
    assert "exc_info" not in data
    assert "ValueError: recorder exploded" in data["exception"]
    assert data["level"] == "error"


def test_console_logs_leave_exceptions_to_the_renderer() -> None:
    processors = build_processors(json_logs=False)

    assert structlog.processors.format_exc_info not in processors
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
