"""Debounced, cancellable scheduling of dosing advisory checks.

Each check is identified by a key (for example "renal:<episode id>").
Submitting a new request for a key cancels whatever is still pending or
in flight for it, waits for a quiet period, then runs the blocking HTTP
call in a worker thread. Only the result of the most recent request for a
key is ever delivered.
"""

import asyncio
import itertools
import logging
from typing import Callable, Optional

from ..config import config
from .client import PEDIATRIC, RENAL, WEIGHT_BASED, AdvisoryFinding, AdvisoryRequest, DosingAdvisor

logger = logging.getLogger(__name__)


ResultCallback = Callable[[str, Optional[AdvisoryFinding]], None]


class AdvisoryScheduler:
    """Runs advisory checks so that only the latest input per key counts."""

    def __init__(
        self,
        advisor: DosingAdvisor | None = None,
        debounce_seconds: float | None = None,
        on_result: ResultCallback | None = None,
    ):
        """Initialize the scheduler.

        Args:
            advisor: Client used for the checks. Created from config if None.
            debounce_seconds: Quiet period before a check is sent. Uses
                config.ADVISORY_DEBOUNCE_SECONDS if None.
            on_result: Called with (key, finding) when a check completes and
                is still the latest for its key.
        """
        self.advisor = advisor or DosingAdvisor()
        self.debounce_seconds = (
            config.ADVISORY_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.on_result = on_result

        self._tasks: dict[str, asyncio.Task] = {}
        self._generation: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._results: dict[str, Optional[AdvisoryFinding]] = {}

        self._checks: dict[str, Callable[[AdvisoryRequest], Optional[AdvisoryFinding]]] = {
            RENAL: self.advisor.check_renal,
            WEIGHT_BASED: self.advisor.check_weight_based,
            PEDIATRIC: self.advisor.check_pediatric,
        }

    def submit(self, key: str, check_type: str, request: AdvisoryRequest) -> asyncio.Task:
        """Schedule a check, superseding any earlier one for the same key.

        Must be called from within a running event loop.

        Raises:
            ValueError: If ``check_type`` is not a known check.
        """
        if check_type not in self._checks:
            raise ValueError(f"Unknown advisory check: {check_type}")

        self.cancel(key)
        generation = next(self._counter)
        self._generation[key] = generation
        self._results.pop(key, None)

        task = asyncio.create_task(self._run(key, generation, check_type, request))
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        """Cancel the pending check for a key. Returns True if one was running."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled superseded advisory check {key}")
        return True

    def forget(self, key: str) -> None:
        """Cancel any pending check for a key and drop its stored result."""
        self.cancel(key)
        self._generation.pop(key, None)
        self._results.pop(key, None)

    def result(self, key: str) -> Optional[AdvisoryFinding]:
        """Latest delivered finding for a key, if any."""
        return self._results.get(key)

    async def close(self) -> None:
        """Cancel every pending check and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._generation.clear()
        self._results.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _is_latest(self, key: str, generation: int) -> bool:
        return self._generation.get(key) == generation

    async def _run(
        self,
        key: str,
        generation: int,
        check_type: str,
        request: AdvisoryRequest,
    ) -> Optional[AdvisoryFinding]:
        try:
            await asyncio.sleep(self.debounce_seconds)

            loop = asyncio.get_running_loop()
            check = self._checks[check_type]
            try:
                finding = await loop.run_in_executor(None, check, request)
            except Exception as e:
                logger.warning(f"Advisory check {key} failed: {e}")
                finding = None

        except asyncio.CancelledError:
            logger.debug(f"Advisory check {key} cancelled")
            raise

        if not self._is_latest(key, generation):
            # A newer request took over while this one was running
            return None

        self._results[key] = finding
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]

        if self.on_result:
            self.on_result(key, finding)
        return finding
