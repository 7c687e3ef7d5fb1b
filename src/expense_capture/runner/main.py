"""
CLI main entry point.
"""

import argparse
import logging
import mimetypes
import sys
import threading
from pathlib import Path

from ..app import ExpenseCaptureApp
from ..config import Config, create_default_config, load_config
from ..extractors import extract_fields
from ..pipeline import DraftValidationError, TesseractRecognizer
from ..services import ConnectivityState, SyncResult
from ..state_store import PersistenceError, RecordStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="expense-capture",
        description="Capture expense receipts offline and sync them to a spreadsheet",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # capture command
    capture_parser = subparsers.add_parser("capture", help="Queue a receipt photo as a record")
    capture_parser.add_argument("image", type=Path, help="Receipt photo")
    capture_parser.add_argument("--description", required=True, help="What was purchased")
    capture_parser.add_argument("--requester", required=True, help="Who is claiming the expense")
    capture_parser.add_argument("--project", required=True, help="Project from capture.projects in the config, or 'otro'")
    capture_parser.add_argument("--other-project", default="", help="Project name when 'otro'")
    capture_parser.add_argument("--date", help="Override the recognized date (YYYY-MM-DD)")
    capture_parser.add_argument("--amount", help="Override the recognized amount")
    capture_parser.add_argument("--document-number", help="Override the recognized document number")
    capture_parser.add_argument(
        "--no-ocr",
        action="store_true",
        help="Skip text recognition; fields must be given explicitly",
    )

    # extract command
    extract_parser = subparsers.add_parser("extract", help="Show fields recognized on a receipt")
    extract_parser.add_argument("file", type=Path, help="Receipt photo, or text file with --text")
    extract_parser.add_argument(
        "--text",
        action="store_true",
        help="Treat the file as already-recognized text",
    )

    # sync command
    subparsers.add_parser("sync", help="Send pending records now")

    # pending command
    subparsers.add_parser("pending", help="List records waiting to be sent")

    # status command
    subparsers.add_parser("status", help="Show queue status and last sync time")

    # watch command
    subparsers.add_parser("watch", help="Monitor connectivity and sync on reconnect")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


def print_sync_result(result: SyncResult) -> None:
    """Print a sync result for the user."""
    if result.offline:
        print(f"📴 {result.message}")
    elif result.nothing_to_sync:
        print(f"✓ {result.message}")
    elif result.error_count:
        print(f"⚠️  {result.message}")
        for error in result.errors[:10]:
            print(f"   - {error}")
    else:
        print(f"✅ {result.message}")


def cmd_capture(
    config: Config,
    image: Path,
    description: str,
    requester: str,
    project: str,
    other_project: str = "",
    date: str | None = None,
    amount: str | None = None,
    document_number: str | None = None,
    use_ocr: bool = True,
) -> int:
    """Queue one receipt."""
    if not image.exists():
        print(f"❌ Image not found: {image}")
        return 1

    mime_type = mimetypes.guess_type(image.name)[0] or "image/jpeg"
    image_bytes = image.read_bytes()

    with ExpenseCaptureApp(config, background_sync=False, notifier=print_sync_result) as app:
        if not use_ocr:
            app.pipeline.recognizer = None

        app.monitor.check()
        draft = app.pipeline.prefill(image_bytes, mime_type)

        draft.description = description
        draft.requester = requester
        draft.project = project
        draft.other_project = other_project
        if project.strip().lower() == config.capture.other_project_value.lower():
            draft.project = "otro"
        if date:
            draft.date = date
        if amount:
            draft.amount = amount
        if document_number:
            draft.document_number = document_number

        try:
            record_id = app.pipeline.submit(draft)
        except DraftValidationError as e:
            print("❌ Cannot save receipt:")
            for problem in e.problems:
                print(f"   - {problem}")
            return 1
        except PersistenceError as e:
            print(f"❌ Could not save receipt: {e}")
            return 1

        print(f"✓ Queued record #{record_id}: {draft.date} {draft.amount} {draft.document_number}")
        if not app.monitor.is_online:
            print("📴 Offline: the record will be sent when the connection returns")

    return 0


def cmd_extract(config: Config, file: Path, is_text: bool = False) -> int:
    """Print recognized receipt fields."""
    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    if is_text:
        text = file.read_text(encoding="utf-8", errors="replace")
    else:
        try:
            text = TesseractRecognizer(lang=config.capture.ocr_language).recognize(file.read_bytes())
        except Exception as e:
            print(f"❌ Text recognition failed: {e}")
            return 1

    result = extract_fields(text)

    print(f"\n🧾 {file.name}")
    print(f"  Date:             {result.date or '-'}")
    print(f"  Document number:  {result.document_number or '-'}")
    print(f"  Amount:           {result.amount or '-'}")
    print(f"  Extractor:        {result.extraction_strategy or '-'}")
    print()

    return 0


def cmd_sync(config: Config) -> int:
    """Send pending records."""
    with ExpenseCaptureApp(config, background_sync=False) as app:
        if not config.sink.is_configured():
            print("⚠️  No sink URL configured (set sink.url or EXPENSE_SINK_URL)")

        app.monitor.check()
        result = app.sync_now()
        print_sync_result(result)

    return 0 if result.success else 1


def cmd_pending(config: Config) -> int:
    """List pending records."""
    store = RecordStore(config.state_db_path)
    try:
        pending = store.list_pending()
    finally:
        store.close()

    if not pending:
        print("✓ No pending records")
        return 0

    print(f"\n📋 {len(pending)} pending record(s)")
    for record in pending:
        print(
            f"  [{record.id}] {record.date}  {record.amount:>10}  "
            f"{record.project}  {record.description}"
        )
    print()

    return 0


def cmd_status(config: Config) -> int:
    """Show queue status."""
    store = RecordStore(config.state_db_path)
    try:
        stats = store.get_stats()
    finally:
        store.close()

    print("\n📊 Queue Status")
    print("=" * 40)
    print(f"  Records total:    {stats['total']}")
    print(f"  Pending:          {stats['pending']}")
    print(f"  Synced:           {stats['synced']}")
    print(f"  Last sync:        {stats['last_sync_at'] or 'never'}")
    print(f"  Sink configured:  {'yes' if config.sink.is_configured() else 'no'}")
    print()

    return 0


def cmd_watch(config: Config) -> int:
    """Run until interrupted, syncing on startup and on reconnect."""

    def on_state(state: ConnectivityState) -> None:
        print("🟢 Online" if state == ConnectivityState.ONLINE else "📴 Offline")

    stop = threading.Event()

    with ExpenseCaptureApp(config, notifier=print_sync_result) as app:
        app.monitor.add_listener(on_state)
        app.start()
        print(f"👀 Watching connectivity ({app.store.count_pending()} pending). Ctrl+C to stop.")
        try:
            while not stop.wait(1.0):
                pass
        except KeyboardInterrupt:
            print("\n⏹  Stopping")

    return 0


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ Config already exists: {config_path}")
        return 1

    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    try:
        if parsed.command == "capture":
            return cmd_capture(
                config,
                parsed.image,
                description=parsed.description,
                requester=parsed.requester,
                project=parsed.project,
                other_project=parsed.other_project,
                date=parsed.date,
                amount=parsed.amount,
                document_number=parsed.document_number,
                use_ocr=not parsed.no_ocr,
            )
        elif parsed.command == "extract":
            return cmd_extract(config, parsed.file, parsed.text)
        elif parsed.command == "sync":
            return cmd_sync(config)
        elif parsed.command == "pending":
            return cmd_pending(config)
        elif parsed.command == "status":
            return cmd_status(config)
        elif parsed.command == "watch":
            return cmd_watch(config)
        else:
            parser.print_help()
            return 1
    except PersistenceError as e:
        # Store unavailable at startup
        print(f"❌ Local record store unavailable: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
