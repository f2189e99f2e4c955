"""Periodic render loop with status tracking and a bounded event log."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from inkframe_output.errors import SinkError
from inkframe_renderer.errors import RenderError

from .performance import RenderBudget
from .pipeline import CycleOutcome, RenderContext, RenderHistory, run_cycle

logger = logging.getLogger("inkframe.scheduler")


class LoopState(str, Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass
class LoopStatus:
    state: LoopState = LoopState.IDLE
    cycles: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_outcome: str | None = None
    last_error: str | None = None
    last_success_utc: str | None = None
    last_digest: str | None = None


class RenderLoop:
    def __init__(
        self,
        context: RenderContext,
        interval_s: int = 900,
        budget: RenderBudget | None = None,
        history: RenderHistory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.context = context
        self.interval_s = interval_s
        self.budget = budget
        self._history = history or RenderHistory()
        self._sleep = sleep
        self._monotonic = monotonic
        self._status = LoopStatus()
        self._events: list[dict[str, Any]] = []
        self._stop = False

    @property
    def status(self) -> LoopStatus:
        return self._status

    @property
    def history(self) -> RenderHistory:
        return self._history

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "state": self._status.state.value,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def stop(self) -> None:
        self._stop = True

    def run_once(self) -> CycleOutcome | None:
        """Run a single cycle; fatal render or sink errors are recorded, not raised."""
        cycle = self._status.cycles
        self._status.state = LoopState.RENDERING
        self._status.cycles += 1
        try:
            outcome = run_cycle(self.context, self._history, cycle)
        except (RenderError, SinkError) as exc:
            self._status.failures += 1
            self._status.consecutive_failures += 1
            self._status.last_outcome = "failed"
            self._status.last_error = str(exc)
            self._log_event("cycle_error", cycle=cycle, error=str(exc))
            logger.error("cycle %d failed: %s", cycle, exc, extra={"event": "cycle_failed", "cycle": cycle, "outcome": "failed"})
            return None

        self._history = outcome.history
        self._status.last_outcome = outcome.status
        if outcome.error:
            self._status.last_error = outcome.error
            self._status.consecutive_failures += 1
        else:
            self._status.last_error = None
            self._status.consecutive_failures = 0
            self._status.last_success_utc = datetime.now(timezone.utc).isoformat()
        if outcome.result is not None:
            self._status.last_digest = outcome.result.frame.digest

        fields: dict[str, Any] = {"cycle": cycle, "outcome": outcome.status}
        if outcome.changed is not None:
            rect = outcome.changed
            fields["changed"] = [rect.x, rect.y, rect.w, rect.h]
        if outcome.sink_result is not None:
            fields["bytes_written"] = outcome.sink_result.bytes_written
        self._log_event("cycle_ok", **fields)
        return outcome

    def _check_budget(self, cycle_s: float) -> None:
        if self.budget is None:
            return
        budget = self.budget.sample(cycle_s, self.interval_s)
        if budget.warning:
            self._log_event(
                "budget_warning",
                warning=budget.warning,
                cpu_percent=budget.cpu_percent,
                rss_mb=budget.rss_mb,
                cycle_s=budget.cycle_s,
            )
            logger.warning(
                "render budget exceeded (%s), consider schedule.interval_s=%d",
                budget.warning,
                budget.recommended_interval_s,
                extra={"event": "budget_warning"},
            )

    def run(self, max_cycles: int | None = None) -> LoopStatus:
        self._stop = False
        done = 0
        while not self._stop and (max_cycles is None or done < max_cycles):
            start = self._monotonic()
            self.run_once()
            elapsed = self._monotonic() - start
            self._check_budget(elapsed)
            done += 1

            if self._stop or (max_cycles is not None and done >= max_cycles):
                break
            self._status.state = LoopState.WAITING
            self._sleep(max(0.0, self.interval_s - elapsed))

        self._status.state = LoopState.STOPPED
        self._log_event("loop_stopped", cycles=done)
        return self._status
