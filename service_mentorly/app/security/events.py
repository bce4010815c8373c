"""
Security event logging.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shared.logging import get_logger


@dataclass(frozen=True)
class SecurityEvent:
    """Append-only security log record."""

    event: str
    ip: str = "unknown"
    user_agent: str = "unknown"
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Keep the documented key order: timestamp first.
        return {"timestamp": data.pop("timestamp"), **data}


class SecurityEventLogger:
    """Writes security events to the structured log and an optional file.

    Recording is best-effort: failures are logged and swallowed so the
    request pipeline never depends on the sink.
    """

    def __init__(self, log_file: Optional[Union[str, Path]] = None):
        self.log_file = Path(log_file) if log_file else None
        self.logger = get_logger("mentorly.security")

    def record(
        self,
        event: str,
        *,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        record = SecurityEvent(
            event=event,
            ip=ip or "unknown",
            user_agent=user_agent or "unknown",
            details=details or {},
        )
        self.logger.warning("SECURITY", security_event=record.to_dict())
        self._append(record)
        return record

    def _append(self, record: SecurityEvent) -> None:
        if self.log_file is None:
            return

        directory = self.log_file.parent
        if not (directory.is_dir() and os.access(directory, os.W_OK)):
            return

        try:
            with self.log_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record.to_dict(), default=str) + "\n")
        except OSError as exc:
            self.logger.warning("Security log write failed", path=str(self.log_file), error=str(exc))

