# test_exports_and_backup.py
"""
Tests for the daily-operations PDF, store backups and config loading.
Run with: python -m pytest test_exports_and_backup.py -v
"""

import logging
import os
import tempfile
import unittest
from datetime import date, time
from pathlib import Path
from unittest import mock

import config
from crash_log import configure_logging, log_current_exception
from database import InstrumentStore, KeyValueStorage
from database_backup import (
    backup_store,
    cleanup_old_backups,
    perform_daily_backup_if_needed,
    verify_backup,
)
from domain.models import InOutStatus, InstrumentRecord
from pdf_export import export_daily_operations_pdf


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()


class TestPdfExport(TempDirTestCase):
    def test_writes_pdf(self):
        records = [
            InstrumentRecord(name="电子天平", management_number="BZ-001", in_out_status=InOutStatus.OUT,
                             outbound_time="2024-06-15 09:00:00", inbound_time="-", operator="张三"),
            InstrumentRecord(name="A & <B>", management_number="BZ-002"),
        ]
        path = export_daily_operations_pdf(records, self.dir / "today", date(2024, 6, 15), "张三")
        self.assertEqual(path.suffix, ".pdf")
        self.assertTrue(path.read_bytes().startswith(b"%PDF"))

    def test_empty_view(self):
        path = export_daily_operations_pdf([], self.dir / "empty.pdf")
        self.assertTrue(path.is_file())


class TestBackup(TempDirTestCase):
    def _make_store(self) -> Path:
        path = self.dir / "instruments.db"
        storage = KeyValueStorage.open(path)
        InstrumentStore(storage).add({"name": "电子天平", "managementNumber": "BZ-001"})
        storage.close()
        return path

    def test_backup_is_verified_copy(self):
        store_path = self._make_store()
        backup = backup_store(store_path)
        self.assertIsNotNone(backup)
        self.assertEqual(backup.parent, self.dir / "backups")
        self.assertTrue(verify_backup(backup))
        storage = KeyValueStorage.open(backup)
        try:
            self.assertEqual(InstrumentStore(storage).get_all()[0].management_number, "BZ-001")
        finally:
            storage.close()

    def test_missing_store(self):
        self.assertIsNone(backup_store(self.dir / "missing.db"))

    def test_daily_backup_only_once(self):
        store_path = self._make_store()
        self.assertIsNotNone(perform_daily_backup_if_needed(store_path))
        self.assertIsNone(perform_daily_backup_if_needed(store_path))

    def test_cleanup_keeps_newest(self):
        backups = self.dir / "backups"
        backups.mkdir()
        for day in range(1, 6):
            (backups / f"instruments_backup_202406{day:02d}_120000.db").write_bytes(b"")
        self.assertEqual(cleanup_old_backups(backups, 2), 3)
        remaining = sorted(p.name for p in backups.iterdir())
        self.assertEqual(remaining, [
            "instruments_backup_20240604_120000.db",
            "instruments_backup_20240605_120000.db",
        ])


class TestLogging(TempDirTestCase):
    def tearDown(self):
        root = logging.getLogger()
        for h in list(root.handlers):
            if isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve().parent == self.dir.resolve():
                root.removeHandler(h)
                h.close()
        super().tearDown()

    def test_configure_is_idempotent_and_captures_exceptions(self):
        log_file = configure_logging(self.dir)
        configure_logging(self.dir)
        handlers = [h for h in logging.getLogger().handlers
                    if isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == log_file.resolve()]
        self.assertEqual(len(handlers), 1)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            log_current_exception("unit test")
        handlers[0].flush()
        text = log_file.read_text(encoding="utf-8")
        self.assertIn("[unit test] Caught exception", text)
        self.assertIn("RuntimeError: boom", text)


class TestConfig(TempDirTestCase):
    def test_env_store_path_wins(self):
        target = self.dir / "env.db"
        with mock.patch.dict(os.environ, {config.STORE_PATH_ENV: str(target)}):
            self.assertEqual(config.load_store_path({"store_path": "other.db"}), target.resolve())

    def test_relative_store_path_from_config(self):
        with mock.patch.dict(os.environ, {config.STORE_PATH_ENV: ""}):
            path = config.load_store_path({"store_path": "data/x.db", "_config_dir": str(self.dir)})
        self.assertEqual(path, (self.dir / "data" / "x.db").resolve())

    def test_config_file(self):
        cfg = self.dir / "config.json"
        cfg.write_text('{"max_payload_bytes": 1024, "sweep_start": "23:30", "operator_name": " 张三 "}',
                       encoding="utf-8")
        with mock.patch.dict(os.environ, {config.CONFIG_PATH_ENV: str(cfg)}):
            data = config.load_config_file()
        self.assertEqual(config.load_max_payload_bytes(data), 1024)
        self.assertEqual(config.load_sweep_start(data), time(23, 30))
        self.assertEqual(config.load_default_operator(data), "张三")

    def test_bad_values_fall_back(self):
        data = {"max_payload_bytes": "lots", "sweep_start": "late"}
        self.assertEqual(config.load_max_payload_bytes(data), config.DEFAULT_MAX_PAYLOAD_BYTES)
        self.assertEqual(config.load_sweep_start(data), config.DEFAULT_SWEEP_START)

    def test_unreadable_config_file(self):
        cfg = self.dir / "config.json"
        cfg.write_text("{broken", encoding="utf-8")
        with mock.patch.dict(os.environ, {config.CONFIG_PATH_ENV: str(cfg)}):
            self.assertEqual(config.load_config_file(), {})


if __name__ == "__main__":
    unittest.main()
