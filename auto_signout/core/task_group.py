from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


@dataclass
class TaskOutcome(Generic[T, R]):
    item: T
    result: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_bounded(
    fn: Callable[[T], R],
    items: Iterable[T],
    *,
    max_in_flight: int,
    label: str = 'task_group',
) -> list[TaskOutcome[T, R]]:
    """Run ``fn`` over ``items`` in groups of at most ``max_in_flight``.

    Every group is awaited before the next one starts. A failing task is captured
    in its outcome and never cancels its siblings. Outcomes keep input order.
    """
    pending = list(items)
    if not pending:
        return []
    width = max(1, int(max_in_flight))
    outcomes: list[TaskOutcome[T, R]] = []
    with ThreadPoolExecutor(max_workers=min(width, len(pending)), thread_name_prefix=label) as executor:
        for start in range(0, len(pending), width):
            group = pending[start : start + width]
            futures = [(item, executor.submit(fn, item)) for item in group]
            for item, future in futures:
                try:
                    outcomes.append(TaskOutcome(item=item, result=future.result()))
                except Exception as exc:
                    logger.warning('task_group_item_failed label=%s error=%s', label, exc)
                    outcomes.append(TaskOutcome(item=item, error=exc))
    return outcomes
