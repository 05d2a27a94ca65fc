# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Guideline lifecycle: open, convert, create, save, test and delete flows."""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from cgb.batch import BatchExecutionEngine
from cgb.config import ConfigurationError, Settings
from cgb.evaluation import Evaluator, SubjectSource
from cgb.generator import SourceGenerator
from cgb.library import (
    BUILDER_METADATA_URL,
    CQL_CONTENT_TYPE,
    ELM_XML_CONTENT_TYPE,
    Extension,
    Library,
    LibraryContent,
    encode_content,
    logic_library_type,
)
from cgb.model import DEFAULT_VERSION, GuidelineArtifact, restore_artifact
from cgb.persistence import LibraryStore, PersistenceError
from cgb.translator import TranslationError, Translator, describe_exception
from cgb.validation import can_open_cleanly, validate_format

logger = logging.getLogger(__name__)

LISTING_PATH: str = "/guidelines"
TESTING_SEGMENT: str = "testing"
_INVALID_ID_CHARS = re.compile(r"[^A-Za-z0-9-]")


class ViewState(str, Enum):
    """Base view of the guidelines workspace."""

    BROWSER = "browser"
    EDITOR = "editor"
    TESTING = "testing"


@dataclass(frozen=True)
class NavigationIntent:
    """Represent a navigation request.

    Attributes:
        library_id: Library to open or test; ``None`` for the listing.
        testing: Whether the testing view was requested.
    """

    library_id: str | None = None
    testing: bool = False


@dataclass(frozen=True)
class NewGuidelineRequest:
    """Represent the values submitted from the new guideline form."""

    name: str
    title: str | None = None
    version: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class GuidelinesView:
    """Read-only snapshot of the orchestrator state.

    Attributes:
        state: Base view.
        conversion_prompt: Whether the conversion decision is pending.
        new_guideline_modal: Whether the new guideline form is shown.
        current_library: Library being edited or tested.
        pending_library: Library waiting for a conversion decision.
        conversion_issues: Format findings shown with the conversion prompt.
        artifact: Artifact of the editing session.
        is_dirty: Whether the artifact has unsaved edits.
        error: Message of the last failed flow.
    """

    state: ViewState
    conversion_prompt: bool
    new_guideline_modal: bool
    current_library: Library | None
    pending_library: Library | None
    conversion_issues: tuple[str, ...]
    artifact: GuidelineArtifact | None
    is_dirty: bool
    error: str | None


class Navigator(Protocol):
    """Receive canonical path changes."""

    def navigate(self, path: str, *, replace: bool) -> None:
        """Navigate to ``path``, replacing the current history entry if asked."""


class ListingView(Protocol):
    """A mounted library listing that can reload in place."""

    async def reload(self) -> None:
        """Reload the displayed listing."""


class ErrorReporter(Protocol):
    """Present flow failures to the user."""

    def report(self, message: str, error: Exception) -> None:
        """Report a failure message and its cause."""


def derive_library_id(name: str) -> str:
    """Replace each character outside ``[A-Za-z0-9-]`` with a hyphen."""
    return _INVALID_ID_CHARS.sub("-", name)


def library_path(library_id: str | None = None, testing: bool = False) -> str:
    """Return the canonical path for the listing, a library or its tests."""
    if not library_id:
        return LISTING_PATH
    path = f"{LISTING_PATH}/{library_id}"
    return f"{path}/{TESTING_SEGMENT}" if testing else path


def parse_path(path: str) -> NavigationIntent:
    """Parse a canonical path into a navigation intent.

    Raises:
        ValueError: If ``path`` is not a guidelines path.
    """
    segments = [segment for segment in path.split("?")[0].split("/") if segment]
    if not segments or segments[0] != LISTING_PATH.strip("/"):
        raise ValueError(f"Not a guidelines path: {path!r}")
    if len(segments) == 1:
        return NavigationIntent()
    if len(segments) == 2:
        return NavigationIntent(library_id=segments[1])
    if len(segments) == 3 and segments[2] == TESTING_SEGMENT:
        return NavigationIntent(library_id=segments[1], testing=True)
    raise ValueError(f"Not a guidelines path: {path!r}")


class GuidelinesOrchestrator:
    """Own the guidelines view state and sequence every lifecycle flow."""

    def __init__(
        self,
        store: LibraryStore,
        translator: Translator,
        generator: SourceGenerator,
        navigator: Navigator,
        settings: Settings,
        evaluator: Evaluator | None = None,
        subject_source: SubjectSource | None = None,
        reporter: ErrorReporter | None = None,
    ) -> None:
        """Initialize the orchestrator in the browser view.

        Args:
            store: Library persistence collaborator.
            translator: CQL translator collaborator.
            generator: Source generator for artifacts.
            navigator: Receiver of canonical path changes.
            settings: Endpoint configuration.
            evaluator: Evaluator used by the testing view.
            subject_source: Roster provider used by the testing view.
            reporter: Optional presenter for flow failures.
        """
        self._store = store
        self._translator = translator
        self._generator = generator
        self._navigator = navigator
        self._settings = settings
        self._evaluator = evaluator
        self._subject_source = subject_source
        self._reporter = reporter

        self._state = ViewState.BROWSER
        self._conversion_prompt = False
        self._new_guideline_modal = False
        self._current_library: Library | None = None
        self._pending_library: Library | None = None
        self._conversion_issues: list[str] = []
        self._artifact: GuidelineArtifact | None = None
        self._is_dirty = False
        self._error: str | None = None
        self._listing: ListingView | None = None
        self._testing_engine: BatchExecutionEngine | None = None

    def view(self) -> GuidelinesView:
        """Return a snapshot of the current state."""
        return GuidelinesView(
            state=self._state,
            conversion_prompt=self._conversion_prompt,
            new_guideline_modal=self._new_guideline_modal,
            current_library=self._current_library,
            pending_library=self._pending_library,
            conversion_issues=tuple(self._conversion_issues),
            artifact=self._artifact,
            is_dirty=self._is_dirty,
            error=self._error,
        )

    @property
    def testing_engine(self) -> BatchExecutionEngine | None:
        """Batch engine mounted while the testing view is active."""
        return self._testing_engine

    def attach_listing(self, listing: ListingView) -> None:
        self._listing = listing

    def detach_listing(self) -> None:
        self._listing = None

    async def handle_intent(self, intent: NavigationIntent) -> None:
        """Apply a navigation intent.

        Args:
            intent: Requested library and view.
        """
        if not intent.library_id:
            self._state = ViewState.BROWSER
            self._conversion_prompt = False
            self._new_guideline_modal = False
            self._pending_library = None
            self._conversion_issues = []
            self._unmount_testing()
            return
        if intent.testing:
            library = await self._fetch(intent.library_id, purpose="testing")
            if library is not None:
                await self._enter_testing(library)
            return
        await self.open_library(intent.library_id)

    async def open_library(self, library_id: str) -> None:
        """Fetch a library and open it, or ask for a conversion decision."""
        library = await self._fetch(library_id, purpose="editing")
        if library is None:
            return
        validation = validate_format(library)
        if can_open_cleanly(library):
            self._enter_editor(library)
            return
        logger.info(
            f"Library needs conversion (library_id={library_id} issues={len(validation.issues)})"
        )
        self._pending_library = library
        self._conversion_issues = list(validation.issues)
        self._conversion_prompt = True

    def confirm_conversion(self) -> None:
        """Open the library waiting for a conversion decision."""
        library = self._pending_library
        if library is None:
            return
        self._enter_editor(library)
        self._conversion_prompt = False
        self._pending_library = None
        self._conversion_issues = []

    def cancel_conversion(self) -> None:
        self._conversion_prompt = False
        self._pending_library = None
        self._conversion_issues = []

    def request_new(self) -> None:
        self._new_guideline_modal = True

    def cancel_new(self) -> None:
        self._new_guideline_modal = False

    async def submit_new(self, request: NewGuidelineRequest) -> Library | None:
        """Create, translate and persist a new guideline, then open it.

        Persistence only starts after translation succeeded; the editor only
        opens after persistence succeeded.

        Args:
            request: Submitted form values.

        Returns:
            Created library, or ``None`` when the flow failed.
        """
        self._new_guideline_modal = False
        self._error = None
        library_id = derive_library_id(request.name)
        title = request.title or request.name
        version = request.version or DEFAULT_VERSION
        library_url = self._settings.library_url(library_id)

        self._artifact = GuidelineArtifact.empty().with_metadata(
            name=request.name,
            title=title,
            version=version,
            description=request.description,
            url=library_url,
        )
        artifact = self._artifact
        cql = self._generator.generate(artifact)

        elm_xml = await self._translate(cql)
        if elm_xml is None:
            return None

        library = Library(
            id=library_id,
            name=request.name,
            title=title,
            version=version,
            status="active",
            url=library_url,
            description=request.description or f"Guideline: {title}",
            type=logic_library_type(),
            content=_content_parts(cql, elm_xml),
            extension=[
                Extension(url=BUILDER_METADATA_URL, value_string=artifact.to_json())
            ],
        )
        try:
            created = await self._store.create(library)
        except PersistenceError as exc:
            self._fail(f"Failed to create library: {_error_message(exc)}", exc)
            return None
        logger.info(f"Guideline created (library_id={library_id} version={version})")
        self._enter_editor(created)
        return created

    async def test_library(self, library: Library) -> None:
        """Switch to the testing view for a library already in hand."""
        await self._enter_testing(library, navigate=True)

    def close(self) -> None:
        """Close the editor or testing view and return to the listing."""
        self._state = ViewState.BROWSER
        self._current_library = None
        self._artifact = None
        self._is_dirty = False
        self._unmount_testing()
        self._navigator.navigate(LISTING_PATH, replace=True)

    async def delete_library(self, library: Library) -> bool:
        """Delete a library and refresh the listing.

        Returns:
            ``True`` when the library was deleted.
        """
        self._error = None
        if not library.id:
            self._fail(
                "Cannot delete library: no ID",
                PersistenceError("Library has no id."),
            )
            return False
        try:
            await self._store.delete(library)
        except PersistenceError as exc:
            self._fail(f"Failed to delete library: {_error_message(exc)}", exc)
            return False

        logger.info(f"Library deleted (library_id={library.id})")
        current = self._current_library
        if current is not None and current.id == library.id:
            self._state = ViewState.BROWSER
            self._current_library = None
            self._artifact = None
            self._is_dirty = False
            self._unmount_testing()
        if self._listing is not None:
            await self._listing.reload()
        else:
            self._navigator.navigate(LISTING_PATH, replace=True)
        return True

    def update_metadata(self, **changes: Any) -> None:
        """Edit metadata of the open artifact and mark it dirty."""
        if self._artifact is None:
            return
        self._artifact = self._artifact.with_metadata(**changes)
        self._is_dirty = True

    def set_artifact(self, artifact: GuidelineArtifact) -> None:
        self._artifact = artifact
        self._is_dirty = True

    async def save(self) -> Library | None:
        """Regenerate, translate and replace the library being edited.

        Returns:
            Stored library, or ``None`` when the flow failed.
        """
        self._error = None
        library = self._current_library
        artifact = self._artifact
        if self._state is not ViewState.EDITOR or library is None or artifact is None:
            self._fail("No guideline to save", PersistenceError("No open guideline."))
            return None
        name = (artifact.metadata.name or "").strip()
        version = (artifact.metadata.version or "").strip()
        if not name or not version:
            missing = "name" if not name else "version"
            self._fail(
                f"Library {missing} is required",
                PersistenceError(f"Missing library {missing}."),
            )
            return None

        cql = self._generator.generate(artifact)
        elm_xml = await self._translate(cql)
        if elm_xml is None:
            return None

        metadata = artifact.metadata
        updated = replace(
            library,
            name=name,
            title=metadata.title or library.title or name,
            version=version,
            url=(metadata.url or "").strip()
            or library.url
            or self._settings.library_url(library.id or ""),
            description=(
                metadata.description
                if metadata.description is not None
                else library.description
            ),
            content=_content_parts(cql, elm_xml),
            extension=[
                ext for ext in library.extension if ext.url != BUILDER_METADATA_URL
            ]
            + [Extension(url=BUILDER_METADATA_URL, value_string=artifact.to_json())],
        )
        try:
            saved = await self._store.update(updated)
        except PersistenceError as exc:
            self._fail(f"Save failed: {_error_message(exc)}", exc)
            return None
        logger.info(f"Guideline saved (library_id={saved.id} version={saved.version})")
        self._current_library = saved
        self._is_dirty = False
        return saved

    async def _fetch(self, library_id: str, purpose: str) -> Library | None:
        self._error = None
        try:
            return await self._store.get(library_id)
        except PersistenceError as exc:
            self._fail(
                f"Failed to load library for {purpose}: {_error_message(exc)}", exc
            )
            return None

    async def _translate(self, cql: str) -> str | None:
        base_url = self._settings.effective_translation_base_url()
        if base_url is None:
            self._fail(
                "Translation service not configured",
                ConfigurationError("No translation base URL configured."),
            )
            return None
        try:
            return await self._translator.translate(cql, base_url)
        except TranslationError as exc:
            details = "; ".join(describe_exception(item) for item in exc.exceptions)
            self._fail(f"Failed to translate CQL: {details or exc}", exc)
            return None

    def _enter_editor(self, library: Library) -> None:
        self._unmount_testing()
        self._current_library = library
        self._artifact = restore_artifact(
            library, self._settings.library_url(library.id or "")
        )
        self._is_dirty = False
        self._state = ViewState.EDITOR
        self._navigator.navigate(library_path(library.id), replace=True)

    async def _enter_testing(self, library: Library, navigate: bool = False) -> None:
        self._unmount_testing()
        self._current_library = library
        self._state = ViewState.TESTING
        if navigate and library.id:
            self._navigator.navigate(library_path(library.id, testing=True), replace=False)
        if self._evaluator is None or self._subject_source is None:
            logger.info(
                f"Testing view has no evaluator configured (library_id={library.id})"
            )
            return
        engine = BatchExecutionEngine(
            library=library,
            evaluator=self._evaluator,
            subject_source=self._subject_source,
            page_size=self._settings.test_page_size,
        )
        self._testing_engine = engine
        await engine.load_roster()

    def _unmount_testing(self) -> None:
        self._testing_engine = None

    def _fail(self, message: str, error: Exception) -> None:
        logger.warning(f"{message} (error_type={type(error).__name__})")
        self._error = message
        if self._reporter is not None:
            self._reporter.report(message, error)


def _content_parts(cql: str, elm_xml: str) -> list[LibraryContent]:
    return [
        LibraryContent(content_type=CQL_CONTENT_TYPE, data=encode_content(cql)),
        LibraryContent(content_type=ELM_XML_CONTENT_TYPE, data=encode_content(elm_xml)),
    ]


def _error_message(error: Exception) -> str:
    """Return the message carried by an error payload, else the error text."""
    payload = getattr(error, "payload", None)
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return str(error) or "Unknown error"
