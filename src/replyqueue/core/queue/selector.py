from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .keys import PENDING_SUFFIX, account_of, claimed_from_pending, is_valid_lock_id

DEFAULT_CLAIM_WINDOW = 3


@dataclass(frozen=True)
class Candidate:
    name: str
    mtime_ns: int


class ClaimSelector:
    """Newest-first, bounded view over the pending tasks of a directory.

    Freshness wins over FIFO here: only the ``window`` most recently written
    pending tasks are offered to a claim. Older tasks stay on disk and remain
    visible in listings, they are just not handed out.
    """

    def __init__(self, window: int = DEFAULT_CLAIM_WINDOW) -> None:
        self.window = max(1, window)

    def pending(self, task_dir: Path, account: str | None = None) -> list[Candidate]:
        try:
            names = os.listdir(task_dir)
        except FileNotFoundError:
            return []

        candidates: list[Candidate] = []
        for name in names:
            if not name.endswith(PENDING_SUFFIX) or name.startswith("."):
                continue
            if account and account_of(name) != account:
                continue
            if not is_valid_lock_id(claimed_from_pending(name)):
                continue
            try:
                stat = os.stat(task_dir / name)
            except FileNotFoundError:
                # claimed or finalized between listdir and stat
                continue
            candidates.append(Candidate(name=name, mtime_ns=stat.st_mtime_ns))

        candidates.sort(key=lambda item: (item.mtime_ns, item.name), reverse=True)
        return candidates

    def candidates(self, task_dir: Path, account: str | None = None) -> list[Candidate]:
        return self.pending(task_dir, account)[: self.window]
