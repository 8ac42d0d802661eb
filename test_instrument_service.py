# test_instrument_service.py
"""
Unit tests for services.instrument_service (validated manual add/update/delete).
Run with: python -m pytest test_instrument_service.py -v
"""

import argparse
import contextlib
import io
import unittest

import main
from database import InstrumentStore, KeyValueStorage, get_connection
from services import instrument_service


class TestInstrumentService(unittest.TestCase):
    def setUp(self):
        self.store = InstrumentStore(KeyValueStorage(get_connection(":memory:")))

    def test_add_requires_name_and_management_number(self):
        with self.assertRaises(ValueError):
            instrument_service.add_instrument(self.store, {"name": "电子天平"})
        with self.assertRaises(ValueError):
            instrument_service.add_instrument(self.store, {"managementNumber": "BZ-001", "name": " "})
        self.assertEqual(self.store.get_all(), [])

    def test_add_accepts_persisted_keys(self):
        record = instrument_service.add_instrument(
            self.store, {"name": "电子天平", "managementNumber": "BZ-001", "instrumentStatus": "in-use"}
        )
        self.assertEqual(self.store.get_by_id(record.id).management_number, "BZ-001")

    def test_update_cannot_blank_required_field(self):
        record = instrument_service.add_instrument(self.store, {"name": "A", "management_number": "1"})
        with self.assertRaises(ValueError):
            instrument_service.update_instrument(self.store, record.id, {"name": ""})
        self.assertTrue(instrument_service.update_instrument(self.store, record.id, {"model": "M"}))
        self.assertEqual(self.store.get_by_id(record.id).model, "M")

    def test_update_falls_back_to_management_number(self):
        record = instrument_service.add_instrument(self.store, {"name": "A", "management_number": "1"})
        self.assertTrue(instrument_service.update_instrument(
            self.store, "wrong-id", {"managementNumber": "1", "remarks": "hi"}
        ))
        self.assertEqual(self.store.get_by_id(record.id).remarks, "hi")
        self.assertFalse(instrument_service.update_instrument(
            self.store, "wrong-id", {"managementNumber": "2", "remarks": "hi"}
        ))

    def test_cli_update_by_management_number(self):
        record = instrument_service.add_instrument(self.store, {"name": "A", "management_number": "1"})
        args = argparse.Namespace(id="wrong-id", fields=["managementNumber=1", "remarks=hi"])
        with contextlib.redirect_stdout(io.StringIO()) as out:
            self.assertEqual(main.cmd_update(self.store, args), 0)
        self.assertIn("A", out.getvalue())
        self.assertEqual(self.store.get_by_id(record.id).remarks, "hi")

    def test_delete(self):
        a = instrument_service.add_instrument(self.store, {"name": "A", "management_number": "1"})
        b = instrument_service.add_instrument(self.store, {"name": "B", "management_number": "2"})
        self.assertTrue(instrument_service.delete_instrument(self.store, a.id))
        self.assertEqual(instrument_service.batch_delete_instruments(self.store, [b.id, "gone"]), 1)
        self.assertEqual(self.store.get_all(), [])
        with self.assertRaises(ValueError):
            instrument_service.batch_delete_instruments(self.store, [])


if __name__ == "__main__":
    unittest.main()
