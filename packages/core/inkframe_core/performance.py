"""Per-cycle resource budgeting for the render loop."""

from __future__ import annotations

from dataclasses import dataclass

import psutil


@dataclass(frozen=True)
class PerformanceTargets:
    cpu_percent_max: float = 50.0
    rss_mb_max: float = 200.0
    cycle_ratio_max: float = 0.5


@dataclass(frozen=True)
class BudgetStatus:
    cpu_percent: float
    rss_mb: float
    cycle_s: float
    overloaded: bool
    warning: str | None
    recommended_interval_s: int


class RenderBudget:
    def __init__(self, targets: PerformanceTargets | None = None, process: psutil.Process | None = None) -> None:
        self.targets = targets or PerformanceTargets()
        self._process = process or psutil.Process()
        # Prime non-blocking CPU measurement.
        self._process.cpu_percent(interval=None)

    def sample(self, cycle_s: float, interval_s: int) -> BudgetStatus:
        cpu = float(self._process.cpu_percent(interval=None))
        rss_mb = float(self._process.memory_info().rss) / (1024 * 1024)
        overloaded = cpu > self.targets.cpu_percent_max or rss_mb > self.targets.rss_mb_max

        warning = None
        interval = interval_s
        if overloaded:
            warning = "resource_overload"
            interval = min(86400, int(interval_s * 1.25) + 30)
        elif interval_s > 0 and cycle_s > interval_s * self.targets.cycle_ratio_max:
            warning = "slow_cycle"
            interval = min(86400, int(cycle_s / self.targets.cycle_ratio_max) + 1)

        return BudgetStatus(
            cpu_percent=cpu,
            rss_mb=rss_mb,
            cycle_s=float(cycle_s),
            overloaded=overloaded,
            warning=warning,
            recommended_interval_s=interval,
        )
