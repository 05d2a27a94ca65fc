# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Command line interface for managing and testing guideline libraries."""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.style import Style
from rich.table import Table

from cgb.batch import TestResult
from cgb.browser import LibraryBrowser
from cgb.config import ConfigurationError, Settings, get_settings
from cgb.database import SQLiteLibraryStore
from cgb.evaluation import Evaluator, Subject, SubjectSource, format_result_value
from cgb.fhir import FhirClient, FhirEvaluator, FhirLibraryStore, FhirSubjectSource
from cgb.generator import CqlGenerator
from cgb.orchestrator import (
    GuidelinesOrchestrator,
    NavigationIntent,
    NewGuidelineRequest,
    ViewState,
)
from cgb.persistence import LibraryStore, PersistenceError
from cgb.translation import HttpTranslator
from cgb.validation import can_open_cleanly, validate_format

logger = logging.getLogger(__name__)

SORT_CHOICES: tuple[str, ...] = ("name", "version", "date")


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


@dataclass
class PathRecorder:
    """Navigator that records canonical paths emitted by the orchestrator."""

    paths: list[tuple[str, bool]] = field(default_factory=list)

    def navigate(self, path: str, *, replace: bool) -> None:
        logger.debug(f"Navigation (path={path} replace={replace})")
        self.paths.append((path, replace))


@dataclass
class StreamReporter:
    """Error reporter writing flow failures to a text stream."""

    stream: TextIO
    errors: list[Exception] = field(default_factory=list)

    def report(self, message: str, error: Exception) -> None:
        self.errors.append(error)
        self.stream.write(f"error: {message}\n")


@dataclass
class Backend:
    """Collaborators selected for one CLI invocation."""

    store: LibraryStore
    evaluator: Evaluator | None = None
    subject_source: SubjectSource | None = None
    fhir_client: FhirClient | None = None

    async def aclose(self) -> None:
        if self.fhir_client is not None:
            await self.fhir_client.aclose()


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="cgb")
    parser.add_argument(
        "--fhir-base-url",
        required=False,
        help="FHIR server base URL; the local SQLite store is used when omitted.",
    )
    parser.add_argument(
        "--translation-base-url",
        required=False,
        help="CQL translation service base URL.",
    )
    parser.add_argument(
        "--database", required=False, help="SQLite database path."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list")
    list_parser.add_argument("--page", type=int, default=1, help="1-based page.")
    list_parser.add_argument("--search", default="", help="Name search term.")
    list_parser.add_argument(
        "--sort", choices=SORT_CHOICES, default="name", help="Sort column."
    )
    list_parser.add_argument(
        "--desc", action="store_true", help="Sort in descending order."
    )

    validate_parser = subparsers.add_parser("validate")
    validate_parser.add_argument("library_id", help="Library id.")

    open_parser = subparsers.add_parser("open")
    open_parser.add_argument("library_id", help="Library id.")
    open_parser.add_argument(
        "--convert",
        action="store_true",
        help="Open libraries that need conversion to the builder format.",
    )

    create_parser = subparsers.add_parser("create")
    create_parser.add_argument("--name", required=True, help="Library name.")
    create_parser.add_argument("--title", required=False, help="Display title.")
    create_parser.add_argument("--version", required=False, help="Library version.")
    create_parser.add_argument(
        "--description", required=False, help="Library description."
    )

    test_parser = subparsers.add_parser("test")
    test_parser.add_argument("library_id", help="Library id.")
    test_parser.add_argument(
        "--subject",
        action="append",
        required=True,
        help="Patient id to evaluate; repeat for several subjects.",
    )

    delete_parser = subparsers.add_parser("delete")
    delete_parser.add_argument("library_id", help="Library id.")
    return parser


def run(
    argv: list[str],
    stdout: TextIO,
    stderr: TextIO,
    settings: Settings | None = None,
) -> int:
    """Run CLI command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.
        settings: Base settings; read from the environment when omitted.

    Returns:
        Exit code.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning(f"Argument parsing failed (argv={argv})")
        return 2
    settings = apply_overrides(settings or get_settings(), args)
    return asyncio.run(_dispatch(args=args, settings=settings, stdout=stdout, stderr=stderr))


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings updated with endpoint options given on the command line."""
    updates: dict[str, Any] = {}
    if args.fhir_base_url:
        updates["fhir_base_url"] = args.fhir_base_url
    if args.translation_base_url:
        updates["translation_base_url"] = args.translation_base_url
    if args.database:
        updates["database_path"] = Path(args.database)
    return settings.model_copy(update=updates) if updates else settings


def build_backend(settings: Settings) -> Backend:
    """Select the library store and evaluation collaborators.

    Args:
        settings: Effective settings.

    Returns:
        FHIR server backend when a FHIR base URL is configured, else the
        SQLite store without evaluation support.
    """
    if settings.fhir_base_url.strip():
        client = FhirClient(
            base_url=settings.fhir_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
        return Backend(
            store=FhirLibraryStore(client),
            evaluator=FhirEvaluator(client),
            subject_source=FhirSubjectSource(client),
            fhir_client=client,
        )
    return Backend(store=SQLiteLibraryStore(db_path=settings.database_path))


async def _dispatch(
    args: argparse.Namespace, settings: Settings, stdout: TextIO, stderr: TextIO
) -> int:
    backend = build_backend(settings)
    reporter = StreamReporter(stream=stderr)
    orchestrator = GuidelinesOrchestrator(
        store=backend.store,
        translator=HttpTranslator(timeout_seconds=settings.request_timeout_seconds),
        generator=CqlGenerator(),
        navigator=PathRecorder(),
        settings=settings,
        evaluator=backend.evaluator,
        subject_source=backend.subject_source,
        reporter=reporter,
    )
    try:
        if args.command == "list":
            return await _run_list(args, backend, settings, stdout, stderr)
        if args.command == "validate":
            return await _run_validate(args, backend, stdout, stderr)
        if args.command == "open":
            return await _run_open(args, orchestrator, stdout)
        if args.command == "create":
            return await _run_create(args, orchestrator, reporter, stdout)
        if args.command == "test":
            return await _run_test(args, orchestrator, backend, stdout, stderr)
        if args.command == "delete":
            return await _run_delete(args, orchestrator, backend, stdout, stderr)
    finally:
        await backend.aclose()

    logger.warning(f"Unsupported command (command={args.command})")
    stderr.write(f"Unsupported command: {args.command}\n")
    return 2


async def _run_list(
    args: argparse.Namespace,
    backend: Backend,
    settings: Settings,
    stdout: TextIO,
    stderr: TextIO,
) -> int:
    browser = LibraryBrowser(backend.store, page_size=settings.browser_page_size)
    browser.sort_by = args.sort
    browser.sort_order = "desc" if args.desc else "asc"
    browser.current_page = max(args.page, 1)
    if args.search.strip():
        await browser.search(args.search)
    else:
        await browser.reload()
    if browser.error:
        stderr.write(f"error: Failed to load libraries: {browser.error}\n")
        return 1

    console = _console(stdout)
    table = Table(show_header=True, expand=True)
    for column in ("id", "name", "title", "version", "status"):
        table.add_column(column, overflow="fold")
    for library in browser.libraries:
        table.add_row(
            *(str(value or "") for value in (
                library.id, library.name, library.title, library.version, library.status
            ))
        )
    console.print(table)
    console.print(
        f"Page {browser.current_page} of {max(browser.total_pages, 1)} "
        f"({browser.total_libraries} libraries)",
        markup=False,
        highlight=False,
    )
    return 0


async def _run_validate(
    args: argparse.Namespace, backend: Backend, stdout: TextIO, stderr: TextIO
) -> int:
    try:
        library = await backend.store.get(args.library_id)
    except PersistenceError as exc:
        stderr.write(f"error: Failed to load library: {exc}\n")
        return 1
    result = validate_format(library)
    console = _console(stdout)
    console.print(
        f"valid={result.is_valid} opens_cleanly={can_open_cleanly(library)}",
        markup=False,
        highlight=False,
    )
    for issue in result.issues:
        console.print(f"- {issue}", markup=False, highlight=False)
    return 0 if result.is_valid else 1


async def _run_open(
    args: argparse.Namespace, orchestrator: GuidelinesOrchestrator, stdout: TextIO
) -> int:
    await orchestrator.open_library(args.library_id)
    view = orchestrator.view()
    console = _console(stdout)
    if view.conversion_prompt:
        console.print(
            "Library needs conversion to the builder format:",
            markup=False,
            highlight=False,
        )
        for issue in view.conversion_issues:
            console.print(f"- {issue}", markup=False, highlight=False)
        if not args.convert:
            orchestrator.cancel_conversion()
            console.print(
                "Re-run with --convert to open it anyway.", markup=False, highlight=False
            )
            return 1
        orchestrator.confirm_conversion()
        view = orchestrator.view()
    if view.state is not ViewState.EDITOR or view.artifact is None:
        return 1

    metadata = view.artifact.metadata
    table = Table(show_header=True, show_lines=True, expand=True)
    table.add_column("field", ratio=1)
    table.add_column("value", ratio=4, overflow="fold")
    for key, value in metadata.to_dict().items():
        table.add_row(key, str(value or ""))
    console.print(table)
    if view.current_library is not None:
        console.rule("CQL", style=Style(color="cyan"), characters="-")
        console.print(
            view.current_library.cql_text(), markup=False, highlight=False, soft_wrap=True
        )
    return 0


async def _run_create(
    args: argparse.Namespace,
    orchestrator: GuidelinesOrchestrator,
    reporter: StreamReporter,
    stdout: TextIO,
) -> int:
    created = await orchestrator.submit_new(
        NewGuidelineRequest(
            name=args.name,
            title=args.title,
            version=args.version,
            description=args.description,
        )
    )
    if created is None:
        if any(isinstance(error, ConfigurationError) for error in reporter.errors):
            return 2
        return 1
    _console(stdout).print(
        f"Created library {created.id} version {created.version}",
        markup=False,
        highlight=False,
    )
    return 0


async def _run_test(
    args: argparse.Namespace,
    orchestrator: GuidelinesOrchestrator,
    backend: Backend,
    stdout: TextIO,
    stderr: TextIO,
) -> int:
    if backend.evaluator is None:
        logger.warning("Testing requested without a FHIR server")
        stderr.write("error: test requires --fhir-base-url\n")
        return 2
    await orchestrator.handle_intent(
        NavigationIntent(library_id=args.library_id, testing=True)
    )
    engine = orchestrator.testing_engine
    if engine is None:
        return 1
    roster = {subject.id: subject for subject in engine.subjects}
    subjects = [
        roster.get(subject_id) or Subject(id=subject_id, display_name=f"Patient {subject_id}")
        for subject_id in args.subject
    ]
    results = await engine.execute(subjects)
    if engine.error:
        stderr.write(f"error: {engine.error}\n")
        return 1
    _write_results(results, stdout)
    return 1 if any(result.failed for result in results) else 0


async def _run_delete(
    args: argparse.Namespace,
    orchestrator: GuidelinesOrchestrator,
    backend: Backend,
    stdout: TextIO,
    stderr: TextIO,
) -> int:
    try:
        library = await backend.store.get(args.library_id)
    except PersistenceError as exc:
        stderr.write(f"error: Failed to load library: {exc}\n")
        return 1
    if not await orchestrator.delete_library(library):
        return 1
    _console(stdout).print(
        f"Deleted library {library.id}", markup=False, highlight=False
    )
    return 0


def _write_results(results: list[TestResult], stdout: TextIO) -> None:
    console = _console(stdout)
    table = Table(show_header=True, show_lines=True, expand=True)
    table.add_column("subject", ratio=1, overflow="fold")
    table.add_column("name", ratio=2, overflow="fold")
    table.add_column("status", ratio=1)
    table.add_column("values", ratio=4, overflow="fold")
    table.add_column("ms", ratio=1, justify="right")
    for result in results:
        if result.failed:
            status, values = "error", str(result.error)
        else:
            status, values = "ok", _summarize_outcome(result.outcome)
        table.add_row(
            result.subject_id,
            result.subject_display_name,
            status,
            values,
            str(result.execution_time_ms),
        )
    console.print(table)


def _summarize_outcome(outcome: Any) -> str:
    if not isinstance(outcome, dict):
        return format_result_value(outcome)
    lines = []
    for param in outcome.get("parameter") or []:
        value = next(
            (param[key] for key in param if key.startswith("value")), None
        )
        lines.append(f"{param.get('name')}: {format_result_value(value)}")
    return "\n".join(lines) or "No Value"


def _console(stdout: TextIO) -> Console:
    return Console(file=stdout, force_terminal=False, color_system="truecolor")


def main() -> None:
    """Run the CLI application and exit."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
