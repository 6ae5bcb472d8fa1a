import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger("formbridge")


@dataclass
class LogSink:
    """Per-request log lines, mirrored to the ``formbridge`` logger."""

    entries: List[str] = field(default_factory=list)
    request_id: str = ""

    def append(self, message: str, level: int = logging.INFO) -> None:
        self.entries.append(timestamped(message))
        if self.request_id:
            logger.log(level, "[%s] %s", self.request_id, message)
        else:
            logger.log(level, "%s", message)


def timestamped(message: str) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    return f"[{timestamp} UTC] {message}"


def log_debug(logs: Optional[LogSink], message: str) -> None:
    if logs is None:
        return
    logs.append(f"DEBUG: {message}", level=logging.DEBUG)
