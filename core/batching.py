# core/batching.py
"""
Chunked, bounded-concurrency fan-out with per-item result collection.

Used by every operation that touches many independent entities (students
of a class, parents of a class). One item's failure never stops or rolls
back another; each worker call is expected to own its own transaction.

Algorithm:
1. Split the items into chunks of `batch_size`
2. For each chunk:
   - Stop if the caller's deadline has passed (remaining items are
     reported as unprocessed, committed chunks stay committed)
   - Run the worker over the chunk on a pool of `max_workers` threads
   - Pause `pause_seconds` before the next chunk
"""
from __future__ import annotations
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from core.errors import WorkflowError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemFailure:
    key: str
    error: str
    kind: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "kind": self.kind, **({"details": self.details} if self.details else {})}


@dataclass
class BatchOutcome(Generic[T]):
    succeeded: Dict[str, T] = field(default_factory=dict)
    failed: Dict[str, ItemFailure] = field(default_factory=dict)
    unprocessed: List[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def error_count(self) -> int:
        return len(self.failed)

    @property
    def complete(self) -> bool:
        return not self.failed and not self.unprocessed

    def summary(self) -> Dict[str, Any]:
        return {
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "perStudentErrors": {k: f.to_dict() for k, f in sorted(self.failed.items())},
            "unprocessed": list(self.unprocessed),
        }


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchRunner:
    def __init__(
        self,
        batch_size: int = 100,
        max_workers: int = 4,
        pause_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.batch_size = max(1, batch_size)
        self.max_workers = max(1, max_workers)
        self.pause_seconds = max(0.0, pause_seconds)
        self._sleep = sleep
        self._monotonic = monotonic

    def run(
        self,
        items: Sequence[Any],
        worker: Callable[[Any], T],
        key: Callable[[Any], str] = str,
        timeout: Optional[float] = None,
    ) -> BatchOutcome[T]:
        outcome: BatchOutcome[T] = BatchOutcome()
        deadline = self._monotonic() + timeout if timeout is not None else None
        chunks = chunked(list(items), self.batch_size)

        for index, chunk in enumerate(chunks):
            if deadline is not None and self._monotonic() >= deadline:
                remaining = [key(item) for c in chunks[index:] for item in c]
                outcome.unprocessed.extend(remaining)
                log.warning("Deadline reached: %d item(s) left unprocessed", len(remaining))
                break

            self._run_chunk(chunk, worker, key, outcome)

            if index < len(chunks) - 1 and self.pause_seconds:
                pause = self.pause_seconds
                if deadline is not None:
                    pause = max(0.0, min(pause, deadline - self._monotonic()))
                self._sleep(pause)

        return outcome

    def _run_chunk(self, chunk, worker, key, outcome: BatchOutcome) -> None:
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunk))) as pool:
            futures = [(key(item), pool.submit(worker, item)) for item in chunk]
            for item_key, future in futures:
                try:
                    outcome.succeeded[item_key] = future.result()
                except WorkflowError as e:
                    log.warning("Item %s failed: %s", item_key, e.message)
                    outcome.failed[item_key] = ItemFailure(item_key, e.message, e.kind.value, e.details)
                except Exception as e:
                    log.exception("Item %s failed unexpectedly", item_key)
                    outcome.failed[item_key] = ItemFailure(item_key, str(e), "INTERNAL_ERROR")
