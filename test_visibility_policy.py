# test_visibility_policy.py
"""
Unit tests for the daily-operations view, delay windows and the end-of-day sweep.
Run with: python -m pytest test_visibility_policy.py -v
Or: python test_visibility_policy.py
"""

import sys
import unittest
from datetime import date, datetime, time

from database import InstrumentStore, KeyValueStorage, get_connection
from domain.models import InstrumentRecord, InstrumentStatus
from visibility_policy import (
    daily_operations_view,
    is_in_sweep_window,
    needs_sweep,
    operations_view,
    parse_date,
    run_daily_sweep,
    sweep_records,
)

TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 23, 58, 30)


class TestParseDate(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(parse_date("2024-06-15 10:00:00"), TODAY)
        self.assertEqual(parse_date("2024/6/15 10:00:00"), TODAY)
        self.assertEqual(parse_date("2024-06-15"), TODAY)

    def test_unparseable(self):
        self.assertIsNone(parse_date("-"))
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date("2024-13-40"))


class TestDailyOperationsView(unittest.TestCase):
    def test_today_operations_included(self):
        records = [
            InstrumentRecord(id="out-today", outbound_time="2024-06-15 09:00:00", inbound_time="-"),
            InstrumentRecord(id="in-today", outbound_time="2024-06-14 09:00:00",
                             inbound_time="2024-06-15 17:00:00"),
            InstrumentRecord(id="yesterday", outbound_time="2024-06-14 09:00:00"),
            InstrumentRecord(id="never"),
        ]
        view = daily_operations_view(records, TODAY)
        self.assertEqual([r.id for r in view], ["out-today", "in-today"])

    def test_delay_window(self):
        records = [
            InstrumentRecord(id="until-tomorrow", display_until="2024-06-16"),
            InstrumentRecord(id="until-today", display_until="2024-06-15"),
            InstrumentRecord(id="expired", display_until="2024-06-14"),
        ]
        view = daily_operations_view(records, TODAY)
        self.assertEqual([r.id for r in view], ["until-tomorrow", "until-today"])
        # Still visible the day after, hidden the day after that
        self.assertEqual([r.id for r in daily_operations_view(records, date(2024, 6, 16))],
                         ["until-tomorrow"])
        self.assertEqual(daily_operations_view(records, date(2024, 6, 17)), [])

    def test_soft_deleted_hidden_from_both(self):
        records = [
            InstrumentRecord(id="a", outbound_time="2024-06-15 09:00:00", deleted_today_record=True),
            InstrumentRecord(id="b", display_until="2024-06-20", deleted_today_record=True),
        ]
        self.assertEqual(daily_operations_view(records, TODAY), [])

    def test_record_in_both_sets_listed_once(self):
        records = [InstrumentRecord(id="a", outbound_time="2024-06-15 09:00:00", display_until="2024-06-16")]
        self.assertEqual(len(daily_operations_view(records, TODAY)), 1)


class TestOperationsView(unittest.TestCase):
    def setUp(self):
        self.records = [
            InstrumentRecord(id="1", name="电子天平", outbound_time="2024-06-15 09:00:00"),
            InstrumentRecord(id="2", name="电子秤", instrument_status=InstrumentStatus.USED),
        ]

    def test_empty_query_gives_daily_view(self):
        self.assertEqual([r.id for r in operations_view(self.records, "", TODAY)], ["1"])

    def test_query_searches_everything_including_used(self):
        self.assertEqual([r.id for r in operations_view(self.records, "dianzi", TODAY)], ["1", "2"])


class TestSweep(unittest.TestCase):
    def test_sweep_window(self):
        self.assertTrue(is_in_sweep_window(NOW))
        self.assertTrue(is_in_sweep_window(datetime(2024, 6, 15, 23, 59, 59)))
        self.assertFalse(is_in_sweep_window(datetime(2024, 6, 15, 23, 57, 59)))
        self.assertFalse(is_in_sweep_window(datetime(2024, 6, 16, 0, 0, 0)))
        self.assertTrue(is_in_sweep_window(datetime(2024, 6, 15, 22, 0), start=time(21, 0)))

    def test_needs_sweep(self):
        returned = InstrumentRecord(outbound_time="2024-06-15 08:00:00", inbound_time="2024-06-15 17:00:00")
        still_out = InstrumentRecord(outbound_time="2024-06-15 08:00:00", inbound_time="-")
        returned_earlier = InstrumentRecord(outbound_time="2024-06-13 08:00:00",
                                            inbound_time="2024-06-14 17:00:00")
        self.assertTrue(needs_sweep(returned, TODAY))
        self.assertFalse(needs_sweep(still_out, TODAY))
        self.assertFalse(needs_sweep(returned_earlier, TODAY))

    def test_sweep_records_clears_and_marks(self):
        records = [
            InstrumentRecord(id="a", outbound_time="2024-06-15 08:00:00", inbound_time="2024-06-15 17:00:00"),
            InstrumentRecord(id="b", outbound_time="2024-06-15 08:00:00", inbound_time="-"),
        ]
        swept, changed = sweep_records(records, NOW)
        self.assertEqual(changed, 1)
        self.assertEqual(swept[0].outbound_time, "-")
        self.assertEqual(swept[0].inbound_time, "-")
        self.assertTrue(swept[0].deleted_today_record)
        self.assertEqual(swept[0].refreshed_at, "2024-06-15T23:58:30")
        self.assertEqual(swept[1], records[1])
        # Input is not modified
        self.assertEqual(records[0].outbound_time, "2024-06-15 08:00:00")

    def test_swept_record_leaves_daily_view(self):
        records = [InstrumentRecord(id="a", outbound_time="2024-06-15 08:00:00",
                                    inbound_time="2024-06-15 17:00:00")]
        self.assertEqual(len(daily_operations_view(records, TODAY)), 1)
        swept, _ = sweep_records(records, NOW)
        self.assertEqual(daily_operations_view(swept, TODAY), [])


class TestRunDailySweep(unittest.TestCase):
    def setUp(self):
        self.store = InstrumentStore(KeyValueStorage(get_connection(":memory:")))

    def test_persists_changes(self):
        self.store.save_all([
            InstrumentRecord(id="a", outbound_time="2024-06-15 08:00:00", inbound_time="2024-06-15 17:00:00"),
        ])
        self.assertEqual(run_daily_sweep(self.store, NOW), 1)
        record = self.store.get_by_id("a")
        self.assertEqual((record.outbound_time, record.inbound_time), ("-", "-"))
        self.assertTrue(record.deleted_today_record)
        # Second run finds nothing left to clear
        self.assertEqual(run_daily_sweep(self.store, NOW), 0)

    def test_no_write_when_nothing_changes(self):
        self.assertEqual(run_daily_sweep(self.store, NOW), 0)
        self.assertIsNone(self.store.storage.get_item(self.store.key))


def run_unittest():
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    return runner.run(suite)


if __name__ == "__main__":
    success = run_unittest().wasSuccessful()
    sys.exit(0 if success else 1)
