from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

SEGMENT_SUFFIX = ".log"


def segment_name(when: datetime | None = None) -> str:
    moment = when or datetime.now(timezone.utc)
    return f"logs.{moment.astimezone(timezone.utc):%Y%m%d}{SEGMENT_SUFFIX}"


class ActivityLog:
    """Append-only text log, one segment per UTC day.

    Webhook traffic lands here verbatim; the confirmation oracle later scans
    the newest segments for evidence that a reply went out.
    """

    def __init__(self, log_dir: str | Path) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def append(self, text: str, when: datetime | None = None) -> Path:
        path = self.log_dir / segment_name(when)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(text)
        return path

    def append_event(self, title: str, event: object, when: datetime | None = None) -> Path:
        moment = when or datetime.now(timezone.utc)
        header = f"=== {title} @ {moment.isoformat()} ===\n"
        body = json.dumps(event, ensure_ascii=False, indent=2)
        return self.append(header + body + "\n=========================\n\n", when=moment)

    def segments(self) -> list[Path]:
        if not self.log_dir.exists():
            return []
        return sorted(self.log_dir.glob(f"*{SEGMENT_SUFFIX}"))
