"""
Process pending menu uploads with the AI parser.

Usage:
    process-menu-uploads [--upload=<id>] [--dry-run]
"""
import argparse
import json
import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from menu_ingest.core.config import get_settings
from menu_ingest.core.logging import configure_logging
from menu_ingest.services.menu_upload_parser import MenuUploadParser
from menu_ingest.services.menu_upload_runner import MenuUploadRunner
from menu_ingest.services.menu_upload_store import MenuUploadStore
from menu_ingest.services.menu_upload_worker import MenuUploadWorker
from menu_ingest.services.upload_text import UploadTextExtractor

logger = logging.getLogger("menu_ingest.worker")


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("upload id must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="process-menu-uploads",
        description="Extract dishes from pending menu uploads for review.",
    )
    parser.add_argument("--upload", type=positive_int, default=None, help="Process only this upload id")
    parser.add_argument("--dry-run", action="store_true", help="Run extraction and AI parsing without writing")
    return parser


def build_runner(db: Session) -> MenuUploadRunner:
    """Wire the default extractor, parser and store into a runner."""
    settings = get_settings()
    store = MenuUploadStore(db)
    worker = MenuUploadWorker(
        extractor=UploadTextExtractor(),
        parser=MenuUploadParser(),
        store=store,
        logger=logger,
        parser_version=settings.MENU_PARSER_VERSION,
        max_items=settings.MENU_UPLOAD_MAX_ITEMS,
        default_locale=settings.MENU_UPLOAD_DEFAULT_LOCALE,
    )
    return MenuUploadRunner(worker, store, logger=logger)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = Session()

    try:
        summary = build_runner(db).run(upload_id=args.upload, dry_run=args.dry_run)
    except Exception:
        logger.error("[menu-worker] Fatal error while processing uploads", exc_info=True)
        return 1
    finally:
        db.close()
        engine.dispose()

    logger.info(f"[menu-worker] run summary {summary.to_dict()}")
    print(json.dumps(summary.to_dict()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
