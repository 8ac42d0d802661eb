# main.py

import argparse
import signal
import sqlite3
import sys
from datetime import date, datetime
from pathlib import Path

from config import (
    PAGE_SIZE,
    SUGGESTION_LIMIT,
    load_config_file,
    load_max_payload_bytes,
    load_store_path,
    load_sweep_start,
)
from crash_log import configure_logging, install_global_excepthook, log_current_exception, logger
from database import (
    InstrumentStore,
    KeyValueStorage,
    get_connection,
    get_persisted_last_store_path,
    persist_last_store_path,
    run_integrity_check,
)
from domain.models import InstrumentRecord, display_label
from search_engine import FilterCriteria, apply_filters, paginate, search, suggestions
from services import (
    identity,
    import_service,
    instrument_service,
    lookup_service,
    operations_service,
    settings_service,
)
from visibility_policy import operations_view, run_daily_sweep


def _open_store(store_arg: str | None, config: dict) -> tuple[InstrumentStore, Path]:
    """--store > config/env > last used store path."""
    if store_arg:
        store_path = Path(store_arg).expanduser().resolve()
    else:
        store_path = load_store_path(config)
        persisted = get_persisted_last_store_path()
        if not store_path.exists() and persisted is not None and persisted.exists():
            store_path = persisted

    conn = get_connection(store_path)
    integrity_err = run_integrity_check(conn)
    if integrity_err:
        conn.close()
        raise sqlite3.DatabaseError(
            f"Store integrity check failed: {integrity_err}\n"
            f"Restore from a backup in {store_path.parent / 'backups'}"
        )
    store = InstrumentStore(KeyValueStorage(conn), max_bytes=load_max_payload_bytes(config))
    persist_last_store_path(store_path)
    return store, store_path


def _format_row(record: InstrumentRecord) -> str:
    cols = (
        record.management_number,
        record.name,
        record.model,
        record.factory_number,
        record.instrument_status,
        record.in_out_status,
        record.outbound_time,
        record.inbound_time,
    )
    return "\t".join(display_label(c) for c in cols)


def _print_records(records, page: int = 1, per_page: int = PAGE_SIZE) -> None:
    result = paginate(records, page, per_page)
    for record in result.items:
        print(_format_row(record))
    print(f"-- page {result.page}/{result.total_pages}, {result.total} record(s)")


def _print_result(record: InstrumentRecord | None, store: InstrumentStore) -> int:
    if record is None:
        print(f"Operation failed: {store.last_error or 'instrument not found'}", file=sys.stderr)
        return 1
    print(_format_row(record))
    return 0


def _parse_fields(pairs: list[str]) -> dict:
    data = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected key=value, got {pair!r}")
        data[key.strip()] = value.strip()
    return data

# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_search(store, args) -> int:
    records = search(store.get_all(), args.query, include_excluded=args.all)
    criteria = FilterCriteria(
        department=args.department,
        type=args.type,
        instrument_status=args.status,
        in_out_status=args.in_out,
        start_date=args.start,
        end_date=args.end,
    )
    if not criteria.is_empty():
        records = apply_filters(records, criteria)
    _print_records(records, args.page, args.per_page)
    return 0


def cmd_suggest(store, args) -> int:
    for text in suggestions(store.get_all(), args.text, args.limit):
        print(text)
    return 0


def cmd_today(store, args) -> int:
    day = date.fromisoformat(args.date) if args.date else date.today()
    records = operations_view(store.get_all(), args.query, day)
    if args.pdf:
        from pdf_export import export_daily_operations_pdf
        path = export_daily_operations_pdf(records, args.pdf, day, identity.get_current_operator(store))
        print(f"Wrote {path}")
        return 0
    _print_records(records, args.page, args.per_page)
    return 0


def cmd_import(store, args) -> int:
    from spreadsheet_io import read_xlsx_rows
    report = import_service.import_rows(store, read_xlsx_rows(args.file))
    print(report.summary())
    return 0 if report.failed == 0 else 1


def cmd_export(store, args) -> int:
    from spreadsheet_io import export_records_xlsx
    records = store.get_all()
    if args.query:
        records = search(records, args.query, include_excluded=True)
    count = export_records_xlsx(records, args.file)
    print(f"Exported {count} record(s)")
    return 0


def cmd_lookup(store, args) -> int:
    result = lookup_service.lookup_by_code(store, args.code)
    print(result.message)
    if result.found:
        print(_format_row(result.record))
        return 0
    return 1


def cmd_checkout(store, args) -> int:
    return _print_result(operations_service.check_out(store, args.management_number, args.operator), store)


def cmd_checkin(store, args) -> int:
    return _print_result(operations_service.check_in(store, args.management_number, args.operator), store)


def cmd_use(store, args) -> int:
    return _print_result(operations_service.mark_used(store, args.management_number, args.operator), store)


def cmd_delay(store, args) -> int:
    return _print_result(
        operations_service.delay(store, args.management_number, args.days, args.operator), store
    )


def cmd_remove_today(store, args) -> int:
    return _print_result(operations_service.soft_delete_today(store, args.management_number), store)


def cmd_add(store, args) -> int:
    return _print_result(instrument_service.add_instrument(store, _parse_fields(args.fields)), store)


def cmd_update(store, args) -> int:
    fields = _parse_fields(args.fields)
    if not instrument_service.update_instrument(store, args.id, fields):
        print(f"Update failed: {store.last_error}", file=sys.stderr)
        return 1
    return _print_result(store.resolve(args.id, fields), store)


def cmd_delete(store, args) -> int:
    removed = instrument_service.batch_delete_instruments(store, args.ids)
    print(f"Deleted {removed} record(s)")
    return 0 if removed else 1


def cmd_set_operator(store, args) -> int:
    settings_service.set_operator_name(store, args.name)
    print(f"Operator set to {settings_service.get_operator_name(store)}")
    return 0


def cmd_sweep(store, args) -> int:
    changed = run_daily_sweep(store, datetime.now())
    print(f"Sweep cleared {changed} record(s)")
    return 0


def cmd_backup(store, args, store_path: Path) -> int:
    from database_backup import backup_store
    path = backup_store(store_path)
    if path is None:
        print("Backup failed, see log", file=sys.stderr)
        return 1
    print(f"Backup written to {path}")
    return 0


def cmd_watch(store, args, config: dict) -> int:
    from PyQt5 import QtCore
    from sweep_scheduler import DailySweepScheduler

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    scheduler = DailySweepScheduler(store, start=load_sweep_start(config))
    scheduler.sweepCompleted.connect(lambda n: print(f"Sweep cleared {n} record(s)", flush=True))
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Wake the interpreter periodically so Ctrl+C is handled while Qt runs
    wake = QtCore.QTimer()
    wake.timeout.connect(lambda: None)
    wake.start(500)
    scheduler.start()
    scheduler.check_now()
    print("Watching for the daily sweep window (Ctrl+C to stop)", flush=True)
    code = app.exec_()
    scheduler.stop()
    return code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Standard instrument tracker")
    parser.add_argument("--store", type=str, default=None, help="Path to the store database file")
    parser.add_argument("--verbose", action="store_true", help="Also log warnings to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="Search instruments (name, model, numbers, range; pinyin accepted)")
    p.add_argument("query", nargs="?", default="")
    p.add_argument("--all", action="store_true", help="Include used and stopped instruments")
    p.add_argument("--department")
    p.add_argument("--type")
    p.add_argument("--status", help="Instrument status value, e.g. in-use")
    p.add_argument("--in-out", dest="in_out", help="in or out")
    p.add_argument("--start", help="Start date YYYY-MM-DD (needs --end)")
    p.add_argument("--end", help="End date YYYY-MM-DD (needs --start)")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--per-page", dest="per_page", type=int, default=PAGE_SIZE)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("suggest", help="Typeahead suggestions for partial text")
    p.add_argument("text")
    p.add_argument("--limit", type=int, default=SUGGESTION_LIMIT)
    p.set_defaults(func=cmd_suggest)

    p = sub.add_parser("today", help="Daily operations view")
    p.add_argument("query", nargs="?", default="")
    p.add_argument("--date", help="Day to show, YYYY-MM-DD (default today)")
    p.add_argument("--pdf", help="Write the view to this PDF file instead of printing")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--per-page", dest="per_page", type=int, default=PAGE_SIZE)
    p.set_defaults(func=cmd_today)

    p = sub.add_parser("import", help="Import instruments from an .xlsx file")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("export", help="Export instruments to an .xlsx file")
    p.add_argument("file")
    p.add_argument("--query", default="", help="Only export records matching this search")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("lookup", help="Find an instrument by scanned QR text")
    p.add_argument("code")
    p.set_defaults(func=cmd_lookup)

    for name, func, help_text in (
        ("checkout", cmd_checkout, "Check an instrument out"),
        ("checkin", cmd_checkin, "Check an instrument in"),
        ("use", cmd_use, "Mark an instrument as used"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("management_number")
        p.add_argument("--operator")
        p.set_defaults(func=func)

    p = sub.add_parser("delay", help="Keep an instrument in the daily view for N more days")
    p.add_argument("management_number")
    p.add_argument("days", type=int)
    p.add_argument("--operator")
    p.set_defaults(func=cmd_delay)

    p = sub.add_parser("remove-today", help="Hide an instrument from today's operations view")
    p.add_argument("management_number")
    p.set_defaults(func=cmd_remove_today)

    p = sub.add_parser("add", help="Add an instrument from key=value fields")
    p.add_argument("fields", nargs="+", metavar="key=value")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("update", help="Update an instrument by id from key=value fields")
    p.add_argument("id")
    p.add_argument("fields", nargs="+", metavar="key=value")
    p.set_defaults(func=cmd_update)

    p = sub.add_parser("delete", help="Permanently delete instruments by id")
    p.add_argument("ids", nargs="+")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("set-operator", help="Save the operator name stamped on operations")
    p.add_argument("name")
    p.set_defaults(func=cmd_set_operator)

    sub.add_parser("sweep", help="Run the end-of-day sweep now").set_defaults(func=cmd_sweep)
    sub.add_parser("backup", help="Back up the store file now").set_defaults(func=cmd_backup)
    sub.add_parser("watch", help="Run the daily sweep scheduler until interrupted").set_defaults(func=cmd_watch)
    return parser


def main(argv=None) -> int:
    # Install global hook so any uncaught exception is logged
    install_global_excepthook()
    args = build_parser().parse_args(argv)
    log_file = configure_logging(console=args.verbose)
    config = load_config_file()

    try:
        store, store_path = _open_store(args.store, config)
    except sqlite3.Error as e:
        logger.error("Cannot open instrument store: %s", e)
        print(str(e), file=sys.stderr)
        return 1

    logger.info("Program start. command=%s store=%s log=%s", args.command, store_path, log_file)
    try:
        from database_backup import perform_daily_backup_if_needed
        perform_daily_backup_if_needed(store_path)
    except OSError as e:
        logger.warning("Daily backup skipped: %s", e)

    try:
        if args.func is cmd_backup:
            return cmd_backup(store, args, store_path)
        if args.func is cmd_watch:
            return cmd_watch(store, args, config)
        return args.func(store, args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception:
        log_current_exception(f"Fatal error in command {args.command}")
        raise
    finally:
        store.storage.close()
        logger.info("Program exit")


if __name__ == "__main__":
    sys.exit(main())
