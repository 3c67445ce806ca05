# Copyright DataStax, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)


logger = logging.getLogger(__name__)


T = TypeVar("T")
R = TypeVar("R")


@dataclass
class WorkerPoolState(Generic[T]):
    """
    The state shared by all workers of one pool run.

    Workers claim work items by advancing `next_index`, and report soft
    failures by appending to the two failure lists (kept in step: the
    i-th failed command produced the i-th failed response).

    All mutations happen under `lock`, so that the same state can be driven
    by asyncio tasks and by threads alike. The lock is reentrant, hence
    the `collect` callback of a pool (which runs holding it) can call
    `record_failure` freely.

    Once `halt` is called, no further items can be claimed.
    """

    work_items: Sequence[T]
    next_index: int = 0
    halted: bool = False
    failed_commands: List[Optional[Dict[str, Any]]] = field(default_factory=list)
    failed_responses: List[Dict[str, Any]] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def claim(self) -> Optional[Tuple[int, T]]:
        """
        Claim the next unclaimed work item. Return its index along with it,
        or None if the pointer has gone past the end of the work list.
        """
        with self.lock:
            if self.halted or self.next_index >= len(self.work_items):
                return None
            index = self.next_index
            self.next_index += 1
            return index, self.work_items[index]

    def halt(self) -> None:
        with self.lock:
            self.halted = True

    def record_failure(
        self, command: Optional[Dict[str, Any]], raw_response: Dict[str, Any]
    ) -> None:
        with self.lock:
            self.failed_commands.append(command)
            self.failed_responses.append(raw_response)

    @property
    def has_failures(self) -> bool:
        return len(self.failed_responses) > 0


def _num_workers(concurrency: int, num_items: int) -> int:
    if concurrency < 1:
        raise ValueError("concurrency must be a positive integer.")
    return min(concurrency, num_items)


def run_worker_pool(
    work_items: Sequence[T],
    *,
    concurrency: int,
    process: Callable[[int, T], R],
    collect: Callable[[WorkerPoolState[T], int, R], None],
) -> WorkerPoolState[T]:
    """
    Process all work items with a bounded pool of threads.

    Each worker repeatedly claims an item, runs `process(index, item)` (the
    blocking request) and then `collect(state, index, outcome)` while holding
    the state lock. An exception raised by `process` (a hard error) stops
    the other workers from claiming more items, and is re-raised to the
    caller once the requests already in flight are over.

    Returns:
        the final WorkerPoolState, to inspect the recorded failures.
    """
    state: WorkerPoolState[T] = WorkerPoolState(work_items=work_items)
    num_workers = _num_workers(concurrency, len(work_items))

    def _worker() -> None:
        while True:
            claimed = state.claim()
            if claimed is None:
                return
            index, item = claimed
            try:
                outcome = process(index, item)
            except Exception:
                state.halt()
                raise
            with state.lock:
                collect(state, index, outcome)

    logger.debug(f"running {num_workers} workers on {len(work_items)} items")
    if num_workers > 1:
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            worker_futures = [executor.submit(_worker) for _ in range(num_workers)]
            for worker_future in worker_futures:
                worker_future.result()
    elif num_workers == 1:
        _worker()
    return state


async def arun_worker_pool(
    work_items: Sequence[T],
    *,
    concurrency: int,
    process: Callable[[int, T], Awaitable[R]],
    collect: Callable[[WorkerPoolState[T], int, R], None],
) -> WorkerPoolState[T]:
    """
    Process all work items with a bounded pool of asyncio tasks.

    Same contract as `run_worker_pool`: here the only suspension point
    of a worker is the `process` coroutine, while claiming and collecting
    run without awaiting. The first hard error raised by a worker
    propagates immediately: the other workers are cancelled, and awaited
    so that their own errors, if any, are retrieved.
    """
    state: WorkerPoolState[T] = WorkerPoolState(work_items=work_items)
    num_workers = _num_workers(concurrency, len(work_items))

    async def _worker() -> None:
        while True:
            claimed = state.claim()
            if claimed is None:
                return
            index, item = claimed
            outcome = await process(index, item)
            with state.lock:
                collect(state, index, outcome)

    logger.debug(f"running {num_workers} async workers on {len(work_items)} items")
    if num_workers > 0:
        tasks = [asyncio.create_task(_worker()) for _ in range(num_workers)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            state.halt()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
    return state
