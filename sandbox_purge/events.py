"""
Structured run events, logged and optionally appended to an NDJSON file.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


class EventTypes:
    RUN_START = "RUN_START"
    RUN_DONE = "RUN_DONE"
    ORG_SCAN = "ORG_SCAN"
    ORG_FAILED = "ORG_FAILED"
    SPACE_NOTIFY = "SPACE_NOTIFY"
    SPACE_NOTIFIED = "SPACE_NOTIFIED"
    SPACE_NOTIFY_FAILED = "SPACE_NOTIFY_FAILED"
    PURGE_STATE = "PURGE_STATE"
    PURGE_DRY_RUN = "PURGE_DRY_RUN"
    PURGE_DONE = "PURGE_DONE"
    PURGE_FAILED = "PURGE_FAILED"
    DELETE_FALLBACK = "DELETE_FALLBACK"
    DELETE_UNVERIFIED = "DELETE_UNVERIFIED"


class EventLog:
    """Emits structured events through a logger and keeps them for the run summary."""

    def __init__(self, path: Optional[Path] = None, logger: Optional[logging.Logger] = None):
        self.path = Path(path) if path else None
        self.logger = logger or logging.getLogger(__name__)
        self.events: List[Dict[str, Any]] = []

    def emit(self, event_type: str, level: int = logging.INFO, **data: Any) -> Dict[str, Any]:
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "data": data,
        }
        self.events.append(event)

        details = " ".join(f"{key}={value}" for key, value in data.items())
        self.logger.log(level, f"{event_type} {details}".rstrip(), extra={"event": event})

        if self.path is not None:
            with open(self.path, "a") as f:
                f.write(json.dumps(event, default=str) + "\n")
                f.flush()
        return event

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]

