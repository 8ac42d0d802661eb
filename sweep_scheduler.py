# sweep_scheduler.py - Runs the end-of-day sweep from a Qt timer
#
# The timer fires every SWEEP_CHECK_INTERVAL_MS; the sweep itself runs at most
# once per calendar day, on the first tick inside the sweep window.

import logging
from datetime import date, datetime, time

from PyQt5 import QtCore

from config import DEFAULT_SWEEP_END, DEFAULT_SWEEP_START, SWEEP_CHECK_INTERVAL_MS
from visibility_policy import is_in_sweep_window, run_daily_sweep

logger = logging.getLogger(__name__)


class DailySweepScheduler(QtCore.QObject):
    """Periodic checker for the daily reset sweep. Emits sweepCompleted(changed) after each run."""
    sweepCompleted = QtCore.pyqtSignal(int)

    def __init__(self, store, start: time = DEFAULT_SWEEP_START, end: time = DEFAULT_SWEEP_END,
                 interval_ms: int = SWEEP_CHECK_INTERVAL_MS, parent=None):
        super().__init__(parent)
        self.store = store
        self.start_time = start
        self.end_time = end
        self.last_sweep_date: date | None = None
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.check_now)

    def start(self):
        logger.info(
            "Daily sweep scheduled between %s and %s (checking every %s s)",
            self.start_time, self.end_time, self._timer.interval() // 1000,
        )
        self._timer.start()

    def stop(self):
        self._timer.stop()

    def is_active(self) -> bool:
        return self._timer.isActive()

    def check_now(self, now: datetime | None = None) -> bool:
        """Run the sweep if inside the window and not yet run today. Returns True if it ran."""
        now = now or datetime.now()
        if not is_in_sweep_window(now, self.start_time, self.end_time):
            return False
        if self.last_sweep_date == now.date():
            return False
        self.last_sweep_date = now.date()
        try:
            changed = run_daily_sweep(self.store, now)
        except Exception:
            logger.exception("Daily sweep failed")
            return False
        self.sweepCompleted.emit(changed)
        return True
