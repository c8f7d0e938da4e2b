from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from booking_grid.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from booking_grid.csvio.reader import read_reservation_file
from booking_grid.logging.init import enable_debug, log_summary, setup_logging
from booking_grid.services.calendar_frame import calendar_window, grid_to_frame, reservations_to_frame
from booking_grid.services.ingest import (
    EmptyDatasetError,
    ProcessingError,
    scan_reservation_files,
)
from booking_grid.services.session import BookingCalendarSession
from booking_grid.services.summary import render_summary_line
from booking_grid.store.document_store import PersistenceFailure
from booking_grid.store.postgres import PostgresDocumentStore

"""CLI entrypoint.

Flow:
- Load .env (overrides the environment) and config/booking_grid.yml
- Select files (positional order, or *.csv in source_directory by name)
- Ingest -> classify -> availability grid, optional manual addition
- Optional outputs: snapshot JSON, grid CSV, shared-store publish
- Print the SUMMARY line
- --watch: keep applying store change notifications until Ctrl+C
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_EMPTY_DATASET = 2
EXIT_PERSISTENCE_FAILURE = 3

SNAPSHOT_FILE_NAME = "snapshot.json"
GRID_FILE_NAME = "availability.csv"
WATCH_TIMEOUT_SECONDS = 30.0


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; .env values win over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_month(value: str) -> date:
    try:
        year, month = value.split("-", 1)
        return date(int(year), int(month), 1)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}") from e


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reservation CSV -> availability grid")
    p.add_argument("files", nargs="*", type=Path, help="Reservation CSV files (processed in this order)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config file path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers & first rows per file then exit")
    p.add_argument(
        "--snapshot", nargs="?", const="", metavar="PATH",
        help=f"Write the classified snapshot as JSON (default: <output_directory>/{SNAPSHOT_FILE_NAME})",
    )
    p.add_argument(
        "--export-grid", nargs="?", const="", metavar="PATH",
        help=f"Write the availability grid as CSV (default: <output_directory>/{GRID_FILE_NAME})",
    )
    p.add_argument("--month", type=_parse_month, help="Month shown in the grid export (YYYY-MM)")
    p.add_argument(
        "--add-manual",
        nargs=4,
        metavar=("ROOM", "GUEST", "CHECK_IN", "CHECK_OUT"),
        help="Add one reservation by hand after loading",
    )
    p.add_argument("--publish", action="store_true", help="Write the result to the shared store")
    p.add_argument("--from-store", action="store_true", help="Load reservations from the shared store")
    p.add_argument(
        "--watch", nargs="?", type=float, const=WATCH_TIMEOUT_SECONDS, metavar="SECONDS",
        help="After --from-store, reload on every store change until interrupted",
    )
    return p.parse_args(argv)


def _inspect_data(paths: list[Path], cfg: AppConfig) -> int:
    if not paths:
        print("inspect: no .csv files")
        return EXIT_SUCCESS
    for f in paths:
        print(f"FILE: {f.name}")
        try:
            source = read_reservation_file(f, cfg.fallback_encoding)
        except OSError as e:
            print(f"  read_error: {e}")
            continue
        columns = list(source.rows[0].keys()) if source.rows else []
        print(f"  encoding={source.encoding} fallback={source.fallback_used} valid_rows={source.valid_rows} cols={columns}")
        print("    sample_rows=", source.rows[:3])
    return EXIT_SUCCESS


def _open_store(cfg: AppConfig) -> PostgresDocumentStore:
    if cfg.database is None:
        raise ConfigError("database section is required for --publish / --from-store")
    store = PostgresDocumentStore.from_config(cfg.database)
    # 初回接続時にテーブルを用意 (IF NOT EXISTS)
    store.ensure_schema()
    return store


def _output_path(value: str, cfg: AppConfig, default_name: str) -> Path:
    # パス省略時は output_directory 配下
    path = Path(value) if value else Path(cfg.output_directory) / default_name
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _write_outputs(
    args: argparse.Namespace, cfg: AppConfig, session: BookingCalendarSession, logger: logging.Logger
) -> None:
    snapshot = session.snapshot
    grid = session.grid
    if args.snapshot is not None:
        path = _output_path(args.snapshot, cfg, SNAPSHOT_FILE_NAME)
        path.write_text(snapshot.to_json(), encoding="utf-8")
        logger.info(f"snapshot written: {path}")
    if args.export_grid is not None:
        anchor = args.month or session.now().date()
        frame = grid_to_frame(grid, calendar_window(anchor))
        path = _output_path(args.export_grid, cfg, GRID_FILE_NAME)
        # BOM 付き UTF-8: 表計算ソフトでの文字化け防止
        frame.to_csv(path, encoding="utf-8-sig")
        logger.info(f"grid written: {path} ({len(frame.index)} rooms x {len(frame.columns)} days)")
    if args.debug:
        for title, records in (("cancelled", snapshot.cancelled), ("changed", snapshot.changed)):
            if records:
                logger.debug(f"{title}:\n{reservations_to_frame(records).to_string(index=False)}")


def _watch_store(
    store: PostgresDocumentStore, session: BookingCalendarSession, timeout: float, logger: logging.Logger
) -> int:
    """Apply store change notifications to the session until Ctrl+C."""
    logger.info(f"watching store {store.table}/{store.document_id} (timeout={timeout}s)")
    try:
        while True:
            document = store.wait_for_change(timeout)
            if document is None:
                continue
            session.apply_store_document(document)
            if not session.is_loaded:
                logger.warning("store document has no reservations")
                continue
            log_summary(render_summary_line(None, session.snapshot, session.grid)[len("SUMMARY "):])
    except KeyboardInterrupt:
        logger.info("watch stopped")
    except PersistenceFailure as e:
        logger.error(f"store: {e}")
        return EXIT_PERSISTENCE_FAILURE
    finally:
        store.close()
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む ([] はそのまま使う)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.watch is not None and not args.from_store:
        logger.error("config: --watch requires --from-store")
        return EXIT_FATAL

    if args.debug:
        enable_debug(logger)
        logger.debug("debug mode enabled")

    store: PostgresDocumentStore | None = None
    if args.publish or args.from_store:
        try:
            store = _open_store(cfg)
        except ConfigError as e:
            logger.error(f"config: {e}")
            return EXIT_FATAL
        except PersistenceFailure as e:
            logger.error(f"store: {e}")
            return EXIT_PERSISTENCE_FAILURE

    if args.files:
        paths = list(args.files)
    elif not args.from_store:
        directory = Path(cfg.source_directory)
        try:
            paths = scan_reservation_files(directory)
        except ProcessingError as e:
            logger.error(f"directory: {e}")
            return EXIT_FATAL
        logger.info(f"Processing files from: {directory}")
    else:
        paths = []

    if args.inspect_data:
        return _inspect_data(paths, cfg)

    session = BookingCalendarSession(
        store=store if args.publish else None,
        timezone=cfg.timezone,
        max_stay_days=cfg.max_stay_days,
        fallback_encoding=cfg.fallback_encoding,
    )
    try:
        try:
            if args.from_store and not paths:
                session.apply_store_document(store.load())
                if not session.is_loaded:
                    raise EmptyDatasetError()
            else:
                session.load_files(paths)
            if args.add_manual:
                room, guest, check_in, check_out = args.add_manual
                session.add_manual_reservation(room, guest, check_in, check_out)
        except EmptyDatasetError as e:
            logger.error(f"empty dataset: {e}")
            return EXIT_EMPTY_DATASET
        except PersistenceFailure as e:
            logger.error(f"store: {e}")
            return EXIT_PERSISTENCE_FAILURE
        except ValueError as e:
            logger.error(f"manual reservation: {e}")
            return EXIT_FATAL
        except ProcessingError as e:
            logger.error(f"processing: {e}")
            return EXIT_FATAL
    finally:
        try:
            session.error_log.flush()
        except OSError as e:
            logger.warning(f"error log flush failed: {e}")

    _write_outputs(args, cfg, session, logger)
    log_summary(render_summary_line(session.last_ingest, session.snapshot, session.grid)[len("SUMMARY "):])
    if args.watch is not None:
        return _watch_store(store, session, args.watch, logger)
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
