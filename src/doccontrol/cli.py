"""CLI entry point: ``doccontrol import`` and ``doccontrol analyze``."""

from __future__ import annotations

# Phase 1: Singleton logging, before any transitive litellm imports
from doccontrol.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import json  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import TYPE_CHECKING  # noqa: E402

from doccontrol import __version__  # noqa: E402
from doccontrol.config import Settings  # noqa: E402
from doccontrol.constants import ControlStep  # noqa: E402
from doccontrol.logging_config import (  # noqa: E402
    apply_log_levels,
    cleanup_third_party_handlers,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from doccontrol.repositories.document_repo import SqlDocumentStore

# Phase 2: Clear litellm's duplicate handlers after all imports
cleanup_third_party_handlers()

_IMPORTABLE = (".txt", ".md", ".markdown", ".json")


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"doccontrol {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    settings = Settings()
    apply_log_levels(
        settings.log_level,
        debug=settings.debug_mode or args.verbose,
    )
    if args.command == "import":
        _run_import(args, settings)
    else:
        _run_analyze(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="doccontrol",
        description=(
            "Compare an uploaded document against managed documents "
            "and propose evidence-backed edits."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    import_parser = sub.add_parser(
        "import",
        help="Load a directory of text documents into the store",
    )
    import_parser.add_argument(
        "directory",
        type=str,
        help="Directory containing .txt, .md or .json files",
    )
    _add_common_args(import_parser)

    analyze = sub.add_parser(
        "analyze",
        help="Analyze an uploaded file against the stored documents",
    )
    analyze.add_argument(
        "file",
        type=str,
        help="Path to the uploaded document",
    )
    _add_common_args(analyze)
    analyze.add_argument(
        "--approve-eligible",
        action="store_true",
        help="Approve changes in the auto-approve-eligible band",
    )
    analyze.add_argument(
        "--apply",
        action="store_true",
        help="Apply approved changes and print the summary",
    )

    return parser


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project",
        "-p",
        default=None,
        help="Project ID scoping the documents",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Database path override (default: from settings)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print stage progress and log at DEBUG",
    )


def _database_url(args: argparse.Namespace, settings: Settings) -> str:
    if args.db:
        return f"sqlite:///{args.db}"
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings.database_url


async def _open_store(
    db_url: str, *, echo: bool = False
) -> tuple[AsyncEngine, SqlDocumentStore]:
    """Create the engine, ensure the schema, return (engine, store)."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from doccontrol.config import create_app_engine
    from doccontrol.models import Base
    from doccontrol.repositories.document_repo import SqlDocumentStore

    engine = create_app_engine(db_url, echo=echo)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return engine, SqlDocumentStore(session_factory)


def _run_import(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the import command."""
    directory = Path(args.directory).resolve()
    if not directory.is_dir():
        print(f"Error: {directory} is not a directory", file=sys.stderr)
        sys.exit(1)

    count = asyncio.run(
        _import_directory(
            directory,
            _database_url(args, settings),
            args.project,
            echo=settings.debug_mode,
        )
    )
    print(f"Imported {count} documents from {directory}")


async def _import_directory(
    directory: Path,
    db_url: str,
    project_id: str | None,
    *,
    echo: bool = False,
) -> int:
    engine, store = await _open_store(db_url, echo=echo)
    count = 0
    try:
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in _IMPORTABLE:
                continue
            await store.create(
                path.stem,
                path.read_text(encoding="utf-8", errors="replace"),
                project_id=project_id,
            )
            count += 1
    finally:
        await engine.dispose()
    return count


def _run_analyze(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the analyze command."""
    file_path = Path(args.file).resolve()
    if not file_path.exists():
        print(f"Error: {file_path} does not exist", file=sys.stderr)
        sys.exit(1)

    exit_code = asyncio.run(
        _analyze_file(
            file_path,
            _database_url(args, settings),
            settings,
            args,
        )
    )
    if exit_code:
        sys.exit(exit_code)


async def _analyze_file(
    file_path: Path,
    db_url: str,
    settings: Settings,
    args: argparse.Namespace,
) -> int:
    from doccontrol.analysis.llm.service import LiteLLMAnalysisService
    from doccontrol.ingestion import TextExtractor, UploadedFile
    from doccontrol.logger import AuditLogger
    from doccontrol.resilience.errors import DocControlError
    from doccontrol.services.events import StageEvent
    from doccontrol.services.session_controller import (
        DocumentControlSession,
    )

    def on_progress(event: StageEvent) -> None:
        if not args.verbose:
            return
        if not event.finished:
            print(f"  {event.label}...")
        elif event.items is not None:
            print(f"  {event.label}: {event.items}")

    engine, store = await _open_store(db_url, echo=settings.debug_mode)
    try:
        session = DocumentControlSession(
            store,
            TextExtractor(),
            LiteLLMAnalysisService(settings),
            settings,
            audit=AuditLogger(settings.log_dir, settings.log_level),
            on_progress=on_progress,
        )
        try:
            session.set_linked_project(args.project)
            session.set_uploaded_file(UploadedFile.from_path(file_path))
        except DocControlError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        print(f"Analyzing: {file_path}")
        state = await session.analyze()
        if state.current_step == ControlStep.ERROR:
            print(f"Error: {state.error}", file=sys.stderr)
            return 1

        print(
            json.dumps(
                [
                    c.model_dump(mode="json", by_alias=True)
                    for c in state.proposed_changes
                ],
                indent=2,
            )
        )
        print(state.summary)

        if args.approve_eligible:
            session.approve_eligible()
        if args.apply:
            try:
                await session.apply_changes()
            except DocControlError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 1
            print(session.state.summary)
            if session.state.current_step == ControlStep.ERROR:
                return 1
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    main()
