"""
Event logging utilities for NDJSON format.
"""

import json
import time
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .state import get_stack_dir

EVENTS_FILE = "logs.ndjson"


def emit_event(stack_name: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Emit an event to the stack's logs.ndjson file.

    Args:
        stack_name: Stack name
        event_type: Event type (e.g., "SYNTH", "TF_PLAN", "ERROR")
        data: Event data
    """
    stack_dir = get_stack_dir(stack_name)
    stack_dir.mkdir(parents=True, exist_ok=True)

    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data
    }

    with open(stack_dir / EVENTS_FILE, "a") as f:
        f.write(json.dumps(event) + "\n")
        f.flush()


def read_events(stack_name: str) -> List[Dict[str, Any]]:
    """
    Read all events from a stack's logs.ndjson file.

    Args:
        stack_name: Stack name

    Returns:
        List of events
    """
    logs_file = get_stack_dir(stack_name) / EVENTS_FILE

    if not logs_file.exists():
        return []

    events = []
    with open(logs_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events


def get_last_event(stack_name: str) -> Optional[Dict[str, Any]]:
    events = read_events(stack_name)
    return events[-1] if events else None


def get_status_from_events(stack_name: str) -> str:
    """
    Determine stack status from the last recorded event.

    Args:
        stack_name: Stack name

    Returns:
        Status string
    """
    last_event = get_last_event(stack_name)
    if not last_event:
        return "unknown"

    status_map = {
        EventTypes.SYNTH: "synthesized",
        EventTypes.PREFLIGHT_OK: "synthesized",
        EventTypes.TF_INIT: "initialized",
        EventTypes.TF_PLAN: "planned",
        EventTypes.TF_APPLY_START: "applying",
        EventTypes.TF_APPLY_LINE: "applying",
        EventTypes.TF_APPLY_DONE: "applied",
        EventTypes.OUTPUTS: "deployed",
        EventTypes.ERROR: "failed",
        EventTypes.DESTROY_START: "destroying",
        EventTypes.DESTROY_DONE: "destroyed",
    }

    return status_map.get(last_event.get("type", ""), "unknown")


def tail_events(stack_name: str, follow: bool = False, poll_interval: float = 0.1) -> Iterator[Dict[str, Any]]:
    """
    Generator that yields events as they're written.

    Args:
        stack_name: Stack name
        follow: If True, continue watching for new events

    Yields:
        Event dictionaries
    """
    logs_file = get_stack_dir(stack_name) / EVENTS_FILE

    if not logs_file.exists():
        return

    offset = 0
    while True:
        try:
            size = logs_file.stat().st_size
            if size > offset:
                with open(logs_file, "r") as f:
                    f.seek(offset)
                    for line in f:
                        line = line.strip()
                        if line:
                            try:
                                yield json.loads(line)
                            except json.JSONDecodeError:
                                continue
                offset = size
            if not follow:
                return
            time.sleep(poll_interval)
        except FileNotFoundError:
            return


class EventTypes:
    SYNTH = "SYNTH"
    PREFLIGHT_OK = "PREFLIGHT_OK"
    TF_INIT = "TF_INIT"
    TF_PLAN = "TF_PLAN"
    TF_APPLY_START = "TF_APPLY_START"
    TF_APPLY_LINE = "TF_APPLY_LINE"
    TF_APPLY_DONE = "TF_APPLY_DONE"
    OUTPUTS = "OUTPUTS"
    ERROR = "ERROR"
    DESTROY_START = "DESTROY_START"
    DESTROY_DONE = "DESTROY_DONE"
