"""Harness runner: fixture -> context windows -> engine suggestions -> scored report."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from completion_engine import EngineUnavailableError, SuggestionEngine
from context_extractor import extract_context
from fixture_parser import AnnotatedFixture, CursorMarker
from scorer import Outcome, Scorer, Verdict

logger = logging.getLogger(__name__)

ENV_PREFIX = "NEXT_EDIT_HARNESS_"


class RunState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Report:
    """Verdicts for one run, in fixture order."""

    verdicts: Tuple[Verdict, ...]
    cancelled: bool = False
    abandoned: Tuple[int, ...] = field(default_factory=tuple)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for verdict in self.verdicts if verdict.outcome is outcome)

    @property
    def passed(self) -> int:
        return self.count(Outcome.PASS)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAIL)

    @property
    def partial(self) -> int:
        return self.count(Outcome.PARTIAL)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for downstream reporters."""
        return {
            "summary": {
                "pass": self.passed,
                "fail": self.failed,
                "partial": self.partial,
                "total": len(self.verdicts),
            },
            "cancelled": self.cancelled,
            "abandoned": list(self.abandoned),
            "verdicts": [
                {
                    "scenario": verdict.marker.scenario if verdict.marker else None,
                    "line": verdict.marker.line if verdict.marker else None,
                    "offset": verdict.marker.offset if verdict.marker else None,
                    "intent": verdict.marker.intent if verdict.marker else None,
                    "outcome": verdict.outcome.value,
                    "rationale": verdict.rationale,
                    "suggestion": verdict.suggestion.text if verdict.suggestion else None,
                    "error": verdict.error,
                }
                for verdict in self.verdicts
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class HarnessRunner:
    """Runs every marker of a fixture through an engine and a scorer.

    Suggestion calls are dispatched to a bounded thread pool; the calling thread
    owns the result buffer and emits verdicts in marker order.
    """

    def __init__(self, engine: SuggestionEngine, scorer: Optional[Scorer] = None, options: Optional[Dict[str, Any]] = None):
        """Initialize runner with an engine, a scorer and run controls."""
        self.engine = engine
        self.scorer = scorer or Scorer()
        self.options = dict(options or {})

        self.window_lines = int(self._option("window_lines", 8))
        self.max_workers = int(self._option("max_workers", 1))
        call_timeout = self._option("call_timeout", None)
        self.call_timeout = float(call_timeout) if call_timeout not in (None, "") else None
        ratio = self._option("max_unavailable_ratio", 1.0)
        self.max_unavailable_ratio = float(ratio) if ratio not in (None, "") else None
        self.poll_interval = float(self._option("poll_interval", 0.05))

        if self.window_lines < 1:
            raise ValueError(f"window_lines must be at least 1, got {self.window_lines}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

        self.state = RunState.IDLE

    def run(self, fixture: Union[AnnotatedFixture, str], cancel: Optional[threading.Event] = None) -> Report:
        """Evaluate every marker and return the ordered report.

        Raises MalformedFixtureError when the fixture has no markers, and
        EngineUnavailableError when the engine was unreachable for at least
        ``max_unavailable_ratio`` of the cases.
        """
        cancel = cancel or threading.Event()
        self._transition(RunState.PARSING)
        try:
            if not isinstance(fixture, AnnotatedFixture):
                fixture = AnnotatedFixture.from_text(fixture)
        except Exception:
            self._transition(RunState.ABORTED)
            raise

        self._transition(RunState.RUNNING)
        buffer, abandoned = self._scatter_gather(fixture, cancel)

        self._transition(RunState.AGGREGATING)
        verdicts = tuple(verdict for verdict in buffer if verdict is not None)
        self._check_availability(verdicts)
        report = Report(verdicts=verdicts, cancelled=bool(abandoned), abandoned=tuple(abandoned))

        self._transition(RunState.DONE)
        logger.info(
            "Run finished: %d pass, %d fail, %d partial, %d abandoned",
            report.passed,
            report.failed,
            report.partial,
            len(abandoned),
        )
        return report

    def _scatter_gather(
        self, fixture: AnnotatedFixture, cancel: threading.Event
    ) -> Tuple[List[Optional[Verdict]], List[int]]:
        """Dispatch suggestion calls and collect verdicts into an index-keyed buffer.

        Calls are submitted only when a slot is free, so each one starts as it is
        submitted. An expired call keeps its thread, so its pool is retired and
        later calls go to a fresh pool.
        """
        markers = fixture.markers
        buffer: List[Optional[Verdict]] = [None] * len(markers)
        queue = deque(markers)
        pending: Dict[Future, Tuple[int, float]] = {}
        pool = self._new_pool()
        retired: List[ThreadPoolExecutor] = []
        try:
            while queue or pending:
                if cancel.is_set():
                    for future in pending:
                        future.cancel()
                    break

                while queue and len(pending) < self.max_workers:
                    marker = queue.popleft()
                    try:
                        context = extract_context(fixture, marker, self.window_lines)
                    except ValueError as exc:
                        buffer[marker.index] = self._failed(marker, exc)
                        continue
                    pending[pool.submit(self.engine.suggest, context)] = (marker.index, time.monotonic())
                if not pending:
                    continue

                done, _ = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    index, _ = pending.pop(future)
                    buffer[index] = self._resolve(markers[index], future)
                if self._expire(pending, buffer, markers):
                    retired.append(pool)
                    pool = self._new_pool()
        finally:
            for executor in retired + [pool]:
                executor.shutdown(wait=False, cancel_futures=True)

        abandoned = [index for index, verdict in enumerate(buffer) if verdict is None]
        if abandoned:
            logger.warning("Run cancelled; abandoned markers %s", abandoned)
        return buffer, abandoned

    def _new_pool(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="next-edit")

    def _expire(
        self,
        pending: Dict[Future, Tuple[int, float]],
        buffer: List[Optional[Verdict]],
        markers: Tuple[CursorMarker, ...],
    ) -> bool:
        """Turn calls that outlived ``call_timeout`` into unavailable-engine failures.

        Returns True when at least one call was given up on.
        """
        if self.call_timeout is None:
            return False
        now = time.monotonic()
        overdue = [
            (future, index)
            for future, (index, submitted) in pending.items()
            if now - submitted > self.call_timeout
        ]
        for future, index in overdue:
            pending.pop(future)
            future.cancel()
            error = EngineUnavailableError(f"no suggestion within {self.call_timeout:g}s")
            buffer[index] = self._failed(markers[index], error)
        return bool(overdue)

    def _resolve(self, marker: CursorMarker, future: Future) -> Verdict:
        """Score a finished suggestion call, degrading any failure to a fail verdict."""
        try:
            result = future.result()
        except EngineUnavailableError as exc:
            return self._failed(marker, exc)
        except Exception as exc:
            logger.exception("Engine raised for marker %d (line %d)", marker.index, marker.line)
            return self._failed(marker, exc)

        try:
            return self.scorer.score(marker.intent, result, marker=marker)
        except Exception as exc:
            logger.exception("Scoring raised for marker %d (line %d)", marker.index, marker.line)
            return self._failed(marker, exc)

    def _failed(self, marker: CursorMarker, exc: Exception) -> Verdict:
        logger.warning("Marker %d (line %d) failed: %s", marker.index, marker.line, exc)
        return Verdict(marker, Outcome.FAIL, f"{type(exc).__name__}: {exc}", error=type(exc).__name__)

    def _check_availability(self, verdicts: Tuple[Verdict, ...]) -> None:
        """Abort when the engine was unavailable for too large a share of cases."""
        if self.max_unavailable_ratio is None or not verdicts:
            return
        unavailable = sum(1 for verdict in verdicts if verdict.error == EngineUnavailableError.__name__)
        if unavailable and unavailable / len(verdicts) >= self.max_unavailable_ratio:
            self._transition(RunState.ABORTED)
            raise EngineUnavailableError(f"engine unavailable for {unavailable} of {len(verdicts)} cases")

    def _option(self, name: str, default: Any) -> Any:
        """Pop an option, letting a ``NEXT_EDIT_HARNESS_<NAME>`` env var override it."""
        value = self.options.pop(name, default)
        return os.getenv(ENV_PREFIX + name.upper(), value)

    def _transition(self, state: RunState) -> None:
        logger.debug("Harness state %s -> %s", self.state.value, state.value)
        self.state = state
