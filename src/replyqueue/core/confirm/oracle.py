from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Literal

from replyqueue.core.activity.log import SEGMENT_SUFFIX

DEFAULT_SEGMENTS = 2
DEFAULT_TAIL_BYTES = 500 * 1024
DEFAULT_RADIUS_BYTES = 2048

Strategy = Literal["substring", "record", "proximity"]


@dataclass(frozen=True)
class Evidence:
    segment: str
    strategy: Strategy


class ConfirmationOracle:
    """Looks for proof in the activity log that a reply reached a chat.

    Only the newest ``segments`` log files are inspected and only their last
    ``tail_bytes`` bytes. Absence of evidence is an ordinary answer, not an
    error.
    """

    def __init__(
        self,
        log_dir: str | Path,
        segments: int = DEFAULT_SEGMENTS,
        tail_bytes: int = DEFAULT_TAIL_BYTES,
        radius_bytes: int = DEFAULT_RADIUS_BYTES,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.segments = max(1, segments)
        self.tail_bytes = max(1, tail_bytes)
        self.radius_bytes = max(0, radius_bytes)
        self.logger = logging.getLogger("replyqueue.confirm")

    def has_reply(self, chat_id: str, author_id: str) -> bool:
        return self.find_evidence(chat_id, author_id) is not None

    def find_evidence(self, chat_id: str, author_id: str) -> Evidence | None:
        chat_id = str(chat_id).strip()
        author_id = str(author_id).strip()
        if not chat_id or not author_id:
            return None

        for path in self.recent_segments():
            tail = self._read_tail(path)
            if tail is None:
                continue
            strategy = match_tail(tail, chat_id, author_id, self.radius_bytes)
            if strategy is not None:
                self.logger.info(
                    "reply_confirmed",
                    extra={"extra_fields": {"segment": path.name, "strategy": strategy, "chat_id": chat_id}},
                )
                return Evidence(segment=path.name, strategy=strategy)
        return None

    def recent_segments(self) -> list[Path]:
        try:
            names = os.listdir(self.log_dir)
        except FileNotFoundError:
            return []

        stamped: list[tuple[int, str]] = []
        for name in names:
            if not name.endswith(SEGMENT_SUFFIX):
                continue
            try:
                stamped.append((os.stat(self.log_dir / name).st_mtime_ns, name))
            except FileNotFoundError:
                continue
        stamped.sort(reverse=True)
        return [self.log_dir / name for _, name in stamped[: self.segments]]

    def _read_tail(self, path: Path) -> str | None:
        try:
            with path.open("rb") as handle:
                handle.seek(0, os.SEEK_END)
                size = handle.tell()
                handle.seek(max(0, size - self.tail_bytes))
                data = handle.read()
        except FileNotFoundError:
            return None
        except OSError:
            self.logger.warning("segment_unreadable", exc_info=True, extra={"extra_fields": {"segment": path.name}})
            return None
        # the cut may land inside a multi-byte character
        return data.decode("utf-8", errors="ignore")


def match_tail(tail: str, chat_id: str, author_id: str, radius: int) -> Strategy | None:
    if _contains_markers(tail, chat_id, author_id):
        return "substring"
    if _has_record(tail, chat_id, author_id):
        return "record"
    if _near_each_other(tail, chat_id, author_id, radius):
        return "proximity"
    return None


def _contains_markers(tail: str, chat_id: str, author_id: str) -> bool:
    chat_marker = f'"chat_id": {json.dumps(chat_id, ensure_ascii=False)}'
    if chat_marker not in tail:
        return False
    if f'"author_id": {json.dumps(author_id, ensure_ascii=False)}' in tail:
        return True
    bare = f'"author_id": {author_id}'
    idx = tail.find(bare)
    while idx != -1:
        after = tail[idx + len(bare) : idx + len(bare) + 1]
        # 123 must not match 1234
        if not (after.isalnum() or after in {"_", "-", "."}):
            return True
        idx = tail.find(bare, idx + 1)
    return False


def _has_record(tail: str, chat_id: str, author_id: str) -> bool:
    for line in tail.splitlines():
        line = line.strip()
        if not line.startswith("{") or "chat_id" not in line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        for mapping in _walk_mappings(payload):
            if _same(mapping.get("chat_id"), chat_id) and _same(mapping.get("author_id"), author_id):
                return True
    return False


def _walk_mappings(value: Any) -> Iterator[dict]:
    if isinstance(value, dict):
        yield value
        for item in value.values():
            yield from _walk_mappings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_mappings(item)


def _same(value: Any, expected: str) -> bool:
    if value is None or isinstance(value, (dict, list, bool)):
        return False
    return str(value) == expected


def _field_pattern(field: str, value: str) -> re.Pattern[str]:
    return re.compile(rf"""(?<![\w-])["']?{field}["']?\s*[:=]\s*["']?{re.escape(value)}(?![\w-])""")


def _near_each_other(tail: str, chat_id: str, author_id: str, radius: int) -> bool:
    author_re = _field_pattern("author_id", author_id)
    for match in _field_pattern("chat_id", chat_id).finditer(tail):
        start = max(0, match.start() - radius)
        end = match.end() + radius
        if author_re.search(tail, start, end):
            return True
    return False
