# test_sweep_scheduler.py
"""
Tests for DailySweepScheduler (no display needed; uses QCoreApplication).
Run with: python -m pytest test_sweep_scheduler.py -v
"""

import unittest
from datetime import datetime

from PyQt5 import QtCore

from database import InstrumentStore, KeyValueStorage, get_connection
from domain.models import InstrumentRecord
from sweep_scheduler import DailySweepScheduler


def _app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


class TestDailySweepScheduler(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = _app()

    def setUp(self):
        self.store = InstrumentStore(KeyValueStorage(get_connection(":memory:")))
        self.store.save_all([
            InstrumentRecord(id="a", outbound_time="2024-06-15 08:00:00", inbound_time="2024-06-15 17:00:00"),
        ])
        self.scheduler = DailySweepScheduler(self.store)
        self.emitted = []
        self.scheduler.sweepCompleted.connect(self.emitted.append)

    def tearDown(self):
        self.scheduler.stop()

    def test_outside_window_does_nothing(self):
        self.assertFalse(self.scheduler.check_now(datetime(2024, 6, 15, 18, 0)))
        self.assertEqual(self.store.get_by_id("a").inbound_time, "2024-06-15 17:00:00")
        self.assertEqual(self.emitted, [])

    def test_runs_once_per_day(self):
        self.assertTrue(self.scheduler.check_now(datetime(2024, 6, 15, 23, 58, 10)))
        self.assertFalse(self.scheduler.check_now(datetime(2024, 6, 15, 23, 59, 10)))
        self.assertEqual(self.emitted, [1])
        self.assertEqual(self.store.get_by_id("a").inbound_time, "-")
        # Next day's window runs again (nothing left to clear)
        self.assertTrue(self.scheduler.check_now(datetime(2024, 6, 16, 23, 58, 5)))
        self.assertEqual(self.emitted, [1, 0])

    def test_start_stop(self):
        self.scheduler.start()
        self.assertTrue(self.scheduler.is_active())
        self.scheduler.stop()
        self.assertFalse(self.scheduler.is_active())


if __name__ == "__main__":
    unittest.main()
