"""
dispatcher.py — Hand webhook alerts to the processor without blocking.

The webhook answers its caller immediately; processing runs as a detached
asyncio task. Outcomes are logged and the last few are kept for the status
endpoint. In-flight tasks are never cancelled; ``drain`` waits for them
(used on shutdown and by tests).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from alertbot.alerts.bot import BotHandle
from alertbot.alerts.models import ProcessOutcome
from alertbot.alerts.processor import AlertProcessor

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Owns the detached processing tasks for one application."""

    def __init__(self, processor: AlertProcessor, bot: Optional[BotHandle], history: int = 50):
        self.processor = processor
        self.bot = bot
        self._running_tasks: Dict[str, asyncio.Task] = {}
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=history)

    @property
    def pending(self) -> int:
        return len(self._running_tasks)

    def recent_outcomes(self) -> List[Dict[str, Any]]:
        return list(self._recent)

    def submit(self, alert_data: Dict[str, Any]) -> str:
        """Schedule processing and return a task id."""
        task_id = uuid.uuid4().hex[:8]
        alert_id = (alert_data.get("alert") or {}).get("id")

        async def run_job() -> Optional[ProcessOutcome]:
            try:
                outcome = await self.processor.process_alert(alert_data, self.bot)
            except Exception as e:
                logger.exception("Processing of alert %s failed", alert_id)
                self._recent.append({"task_id": task_id, "alert_id": alert_id, "status": "error", "error": str(e)})
                return None
            finally:
                self._running_tasks.pop(task_id, None)

            log = logger.info if outcome.success else logger.warning
            log(
                "Alert %s processed: %s%s",
                alert_id, outcome.status.value,
                f" ({outcome.error})" if outcome.error else "",
                extra={"alert_id": alert_id, "status": outcome.status.value},
            )
            self._recent.append({"task_id": task_id, **outcome.to_dict()})
            return outcome

        task = asyncio.create_task(run_job(), name=f"alert-{alert_id}")
        self._running_tasks[task_id] = task
        return task_id

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every in-flight task (including ones they schedule)."""
        while self._running_tasks:
            tasks = list(self._running_tasks.values())
            _, still_running = await asyncio.wait(tasks, timeout=timeout)
            if still_running:
                logger.warning("%d alert task(s) still running after %.1fs", len(still_running), timeout)
                return
