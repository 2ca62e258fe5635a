from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from replyqueue.core.queue.schemas import TaskDraft
from replyqueue.core.queue.store import TaskStore


def test_one_task_is_claimed_by_exactly_one_worker(tmp_path) -> None:
    TaskStore(tmp_path).create(TaskDraft(chat_id="chat-1", reply_text="hi"))
    stores = [TaskStore(tmp_path) for _ in range(8)]
    barrier = threading.Barrier(len(stores))

    def _claim(store: TaskStore):
        barrier.wait()
        return store.claim()

    with ThreadPoolExecutor(max_workers=len(stores)) as pool:
        results = list(pool.map(_claim, stores))

    winners = [result for result in results if result is not None]
    assert len(winners) == 1
    assert (tmp_path / winners[0].lock_id).exists()


def test_workers_drain_queue_without_duplicates(tmp_path) -> None:
    seed = TaskStore(tmp_path)
    created = {seed.create(TaskDraft(chat_id=f"chat-{i}", reply_text="hi")).id for i in range(20)}
    stores = [TaskStore(tmp_path) for _ in range(4)]

    def _drain(store: TaskStore) -> list[str]:
        taken: list[str] = []
        while True:
            claimed = store.claim()
            if claimed is None:
                return taken
            taken.append(claimed.task.id)
            store.finalize(claimed.lock_id)

    with ThreadPoolExecutor(max_workers=len(stores)) as pool:
        batches = list(pool.map(_drain, stores))

    taken = [task_id for batch in batches for task_id in batch]
    assert len(taken) == len(set(taken))
    assert set(taken) == created
    assert list(tmp_path.iterdir()) == []
