"""
Token accumulator: turns transport events into a running document.

The accumulator owns the canonical text. Observers only ever receive copies,
and the completion callback is handed the accumulator's own value, so what
gets persisted never depends on how far a UI got in rendering snapshots.
"""

from dataclasses import dataclass
from typing import Callable, Mapping

from letter_stream.application.ports import StreamObserverPort
from letter_stream.domain.exceptions import EmptyResultError, GenerationError
from letter_stream.infra.config.logging_config import get_logger
from letter_stream.infra.metrics import record_fragment

SnapshotCallback = Callable[[str, bool, int], None]
CompletedCallback = Callable[[str], None]
FailedCallback = Callable[[GenerationError], None]


@dataclass(frozen=True)
class ProgressPolicy:
    """How snapshot progress is estimated from the dictated input."""

    source_variable: str = "transcription"
    length_factor: int = 3
    floor_length: int = 2000
    cap: int = 95

    def expected_length(self, variables: Mapping[str, str]) -> int:
        source = variables.get(self.source_variable) or ""
        return max(len(source) * self.length_factor, self.floor_length)


class TokenAccumulator(StreamObserverPort):
    def __init__(
        self,
        on_snapshot: SnapshotCallback,
        on_completed: CompletedCallback,
        on_failed: FailedCallback,
        expected_length: int = 2000,
        progress_cap: int = 95,
        min_length: int = 1,
    ):
        self._on_snapshot = on_snapshot
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._expected_length = max(1, expected_length)
        self._progress_cap = progress_cap
        self._min_length = max(1, min_length)
        self._text = ""
        self._fragments = 0
        self._finished = False
        self._log = get_logger("service.token_accumulator")

    @property
    def text(self) -> str:
        return self._text

    @property
    def fragment_count(self) -> int:
        return self._fragments

    @property
    def finished(self) -> bool:
        return self._finished

    def progress(self) -> int:
        """Percent of the expected length received, capped below 100."""
        percent = round(len(self._text) / self._expected_length * 100)
        return min(percent, self._progress_cap)

    def detach(self) -> None:
        """Stop reacting to events; later events are dropped."""
        self._finished = True

    def on_fragment(self, text: str) -> None:
        if self._finished:
            return
        # Appended verbatim, whitespace included
        self._text += text
        self._fragments += 1
        record_fragment()
        self._on_snapshot(self._text, False, self.progress())

    def on_complete(self) -> None:
        if self._finished:
            return
        self._finished = True

        final_text = self._text
        if len(final_text) < self._min_length:
            self._log.warning(
                "accumulator.empty_result",
                length=len(final_text),
                min_length=self._min_length,
                fragments=self._fragments,
            )
            self._on_failed(EmptyResultError(len(final_text), self._min_length))
            return

        self._on_snapshot(final_text, True, 100)
        self._on_completed(final_text)

    def on_error(self, error: GenerationError) -> None:
        if self._finished:
            return
        self._finished = True
        self._log.info(
            "accumulator.stream_error",
            code=error.code,
            error=error.message,
            received=len(self._text),
        )
        self._on_failed(error)

    def __repr__(self) -> str:
        state = "finished" if self._finished else "open"
        return f"<TokenAccumulator {state} chars={len(self._text)}>"
