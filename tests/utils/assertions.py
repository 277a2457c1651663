"""
Assertions over structured log events captured by ``caplog``.
"""

from typing import Any, Dict, List


def logged_events(caplog) -> List[Dict[str, Any]]:
    """Structured payloads of every captured event, in order."""
    return [
        record.structured_data
        for record in caplog.records
        if hasattr(record, "structured_data")
    ]


def events_named(caplog, name: str) -> List[Dict[str, Any]]:
    return [e for e in logged_events(caplog) if e.get("event") == name]


def assert_event_logged(caplog, name: str, **expected: Any) -> Dict[str, Any]:
    """
    Assert at least one event called ``name`` was logged whose payload
    contains ``expected``; returns the first match.
    """
    matches = events_named(caplog, name)
    assert matches, (
        f"Event '{name}' not logged. Seen: {[e.get('event') for e in logged_events(caplog)]}"
    )
    for event in matches:
        if all(event.get(k) == v for k, v in expected.items()):
            return event
    raise AssertionError(f"No '{name}' event matched {expected}: {matches}")


def assert_event_not_logged(caplog, name: str) -> None:
    assert not events_named(caplog, name), f"Unexpected event '{name}' logged"
