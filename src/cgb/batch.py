# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Concurrent evaluation of a compiled library over test subjects."""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from cgb.evaluation import (
    EvaluationError,
    Evaluator,
    Subject,
    SubjectSource,
    subject_parameters,
)
from cgb.library import Library

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE: int = 20
EMPTY_SELECTION_MESSAGE: str = "Please select at least one subject to test"


@dataclass(frozen=True)
class TestResult:
    """Represent the evaluation of one subject.

    Exactly one of ``outcome`` and ``error`` is set.

    Attributes:
        subject_id: Evaluated subject id.
        subject_display_name: Subject name for display.
        outcome: Evaluator response on success.
        error: Captured failure on error.
        execution_time_ms: Elapsed wall time of the call.
    """

    __test__ = False

    subject_id: str
    subject_display_name: str
    outcome: Any = None
    error: Any = None
    execution_time_ms: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None


class BatchExecutionEngine:
    """Run a library against selected subjects and hold the roster view."""

    def __init__(
        self,
        library: Library,
        evaluator: Evaluator,
        subject_source: SubjectSource,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        """Initialize the engine for one library.

        Args:
            library: Library under test.
            evaluator: Evaluation collaborator.
            subject_source: Roster provider.
            page_size: Roster page size.

        Raises:
            ValueError: If ``page_size`` is not greater than zero.
        """
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.library = library
        self._evaluator = evaluator
        self._subject_source = subject_source
        self._page_size = page_size
        self._current_page = 1
        self._subjects: list[Subject] = []
        self._selected: list[Subject] = []
        self._results: list[TestResult] = []
        self._expanded: set[str] = set()
        self.error: str | None = None
        self.is_loading = False
        self.is_executing = False

    @property
    def subjects(self) -> list[Subject]:
        return list(self._subjects)

    @property
    def selected(self) -> list[Subject]:
        return list(self._selected)

    @property
    def results(self) -> list[TestResult]:
        return list(self._results)

    @property
    def expanded(self) -> frozenset[str]:
        return frozenset(self._expanded)

    async def load_roster(self) -> None:
        """Load the full subject roster and reset to the first page."""
        await self._load(term="", action="load")

    async def search(self, term: str) -> None:
        """Search the roster on the server; an empty term reloads everything."""
        if term.strip():
            await self._load(term=term, action="search")
        else:
            await self.load_roster()

    async def _load(self, term: str, action: str) -> None:
        self.is_loading = True
        try:
            subjects = await self._subject_source.search(term)
        except Exception as exc:
            logger.warning(f"Subject roster {action} failed (term={term!r} error={exc})")
            self.error = f"Failed to {action} subjects: {str(exc) or 'Unknown error'}"
            return
        finally:
            self.is_loading = False
        self._subjects = list(subjects)
        self._current_page = 1

    def toggle_subject(self, subject: Subject) -> None:
        """Add a subject to the selection, or remove it when already selected."""
        if self.is_selected(subject):
            self._selected = [s for s in self._selected if s.id != subject.id]
        else:
            self._selected.append(subject)

    def is_selected(self, subject: Subject) -> bool:
        return any(s.id == subject.id for s in self._selected)

    def clear_selection(self) -> None:
        self._selected = []

    async def execute(self, selected: list[Subject] | None = None) -> list[TestResult]:
        """Evaluate the library for every selected subject concurrently.

        One subject's failure is captured in its result and never fails the
        batch. Results follow selection order.

        Args:
            selected: Subjects to run; defaults to the current selection.

        Returns:
            One result per selected subject, or an empty list when the run
            is rejected.
        """
        subjects = list(self._selected if selected is None else selected)
        if not subjects:
            logger.warning(
                f"Batch execution rejected (library_id={self.library.id} reason=empty_selection)"
            )
            self.error = EMPTY_SELECTION_MESSAGE
            return []
        library_id = self.library.id
        if not library_id:
            self.error = "Library ID is missing"
            return []

        self.is_executing = True
        self.error = None
        self._results = []
        started_at = time.monotonic()
        try:
            results = await asyncio.gather(
                *(self._evaluate_one(library_id, subject) for subject in subjects)
            )
        finally:
            self.is_executing = False

        self._results = list(results)
        self._expanded = {result.subject_id for result in self._results}
        logger.info(
            "batch_execution_completed library_id=%s total=%s failed=%s elapsed_ms=%s",
            library_id,
            len(self._results),
            sum(1 for result in self._results if result.failed),
            _elapsed_ms(started_at),
        )
        return self.results

    async def _evaluate_one(self, library_id: str, subject: Subject) -> TestResult:
        started_at = time.monotonic()
        try:
            outcome = await self._evaluator.evaluate(
                library_id, subject_parameters(subject.id)
            )
            if outcome is None:
                raise EvaluationError("Evaluator returned no outcome")
        except Exception as exc:
            logger.warning(
                f"Evaluation failed for subject (library_id={library_id} "
                f"subject_id={subject.id} error={exc})"
            )
            return TestResult(
                subject_id=subject.id,
                subject_display_name=subject.display_name,
                error=exc,
                execution_time_ms=_elapsed_ms(started_at),
            )
        return TestResult(
            subject_id=subject.id,
            subject_display_name=subject.display_name,
            outcome=outcome,
            execution_time_ms=_elapsed_ms(started_at),
        )

    def toggle_expanded(self, subject_id: str) -> None:
        if subject_id in self._expanded:
            self._expanded.discard(subject_id)
        else:
            self._expanded.add(subject_id)

    def is_expanded(self, subject_id: str) -> bool:
        return subject_id in self._expanded

    @property
    def all_expanded(self) -> bool:
        return bool(self._results) and all(
            result.subject_id in self._expanded for result in self._results
        )

    def toggle_all_expanded(self) -> None:
        """Collapse every result when all are expanded, else expand all."""
        if self.all_expanded:
            self._expanded = set()
        else:
            self._expanded = {result.subject_id for result in self._results}

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self._subjects) / self._page_size))

    @property
    def start_index(self) -> int:
        """1-based position of the first subject on the current page."""
        return (self._current_page - 1) * self._page_size + 1

    @property
    def end_index(self) -> int:
        return min(self._current_page * self._page_size, len(self._subjects))

    @property
    def paginated_subjects(self) -> list[Subject]:
        start = (self._current_page - 1) * self._page_size
        return self._subjects[start : start + self._page_size]

    def go_to_page(self, page: int) -> None:
        if 1 <= page <= self.total_pages:
            self._current_page = page

    def next_page(self) -> None:
        self.go_to_page(self._current_page + 1)

    def previous_page(self) -> None:
        self.go_to_page(self._current_page - 1)

    def set_page_size(self, size: int) -> None:
        """Change the page size and return to the first page.

        Raises:
            ValueError: If ``size`` is not greater than zero.
        """
        if size <= 0:
            raise ValueError("page size must be > 0")
        self._page_size = size
        self._current_page = 1


def _elapsed_ms(started_at: float) -> int:
    return max(0, int(round((time.monotonic() - started_at) * 1000)))
