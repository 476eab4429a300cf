"""
Generation session manager.

Coordinates one generation session per target document:
1. Cancelling any live session for the target before starting a new one
2. Resolving the template and substituting placeholders
3. Opening the stream and relaying accumulator snapshots to the UI
4. Persisting the final text exactly once per session: create the first
   time a target is saved, update its bound document afterwards
5. Reporting every terminal state (done, failed, cancelled) to the UI

Sessions for different targets never share state. Late events from a
replaced or cancelled session are dropped by identity: every callback
carries the session it was created for and is ignored unless that session is
still the target's live one.
"""

import asyncio
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from letter_stream.application.ports import (
    DocumentStorePort,
    SessionObserverPort,
    Snapshot,
    StreamHandlePort,
    StreamTransportPort,
    TerminalNotice,
)
from letter_stream.application.prompts.placeholders import (
    placeholder_names,
    substitute,
)
from letter_stream.application.services.template_cache import TemplateCache
from letter_stream.application.services.token_accumulator import (
    ProgressPolicy,
    TokenAccumulator,
)
from letter_stream.domain.entities.generation import GenerationRequest, StreamRequest
from letter_stream.domain.entities.session import StreamSession
from letter_stream.domain.entities.template import TemplateRecord
from letter_stream.domain.exceptions import (
    GenerationError,
    InvalidSessionStateError,
    PersistenceFailureError,
)
from letter_stream.domain.value_objects.session_state import SessionState
from letter_stream.infra.config.logging_config import bind_context, get_logger
from letter_stream.infra.metrics import (
    observe_persist,
    record_session_finished,
    record_session_started,
)


class NullSessionObserver(SessionObserverPort):
    """Observer used when nobody is listening."""

    def on_snapshot(self, snapshot: Snapshot) -> None:
        pass

    def on_terminal(self, notice: TerminalNotice) -> None:
        pass


@dataclass(eq=False)
class _LiveSession:
    """Runtime pieces owned by one session."""

    session: StreamSession
    accumulator: Optional[TokenAccumulator] = None
    handle: Optional[StreamHandlePort] = None
    persist_task: Optional[asyncio.Task] = None


class GenerationSessionManager:
    def __init__(
        self,
        template_cache: TemplateCache,
        transport: StreamTransportPort,
        document_store: DocumentStorePort,
        stream_endpoint: str,
        observer: Optional[SessionObserverPort] = None,
        model: str = "gpt-4o-mini",
        min_result_length: int = 1,
        progress_policy: Optional[ProgressPolicy] = None,
    ):
        self._templates = template_cache
        self._transport = transport
        self._documents = document_store
        self._endpoint = stream_endpoint
        self._observer = observer or NullSessionObserver()
        self._model = model
        self._min_result_length = min_result_length
        self._progress = progress_policy or ProgressPolicy()

        self._live: Dict[str, _LiveSession] = {}
        self._bound_ids: Dict[str, str] = {}
        self._last_requests: Dict[str, GenerationRequest] = {}
        self._persist_locks: Dict[str, asyncio.Lock] = {}
        self._log = get_logger("service.session_manager")

    # ---------- PUBLIC API ----------

    async def start(
        self,
        target_id: str,
        template_id: str,
        variables: Optional[Mapping[str, str]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> StreamSession:
        """
        Start generating content for a target.

        Any live session for the same target is cancelled first. Failures
        are not raised; they end the returned session in FAILED and are
        reported to the observer.

        Args:
            target_id: Logical document (possibly a provisional client handle)
            template_id: Template to resolve
            variables: Placeholder values for the template instructions
            metadata: Extra fields sent with the persisted document

        Returns:
            StreamSession: The new session (may already be terminal)
        """
        request = GenerationRequest(
            target_id=target_id,
            template_id=template_id,
            variables=variables or {},
            metadata=metadata or {},
        )
        return await self._launch(request)

    def cancel(self, target_id: str) -> bool:
        """
        Cancel the target's live session.

        Returns:
            bool: True if a session was cancelled, False if none was live
        """
        live = self._live.get(target_id)
        if live is None:
            return False
        return self._cancel_live(live, reason="Cancelled by user")

    def cancel_where(
        self,
        predicate: Callable[[StreamSession], bool],
        reason: str = "Cancelled by user",
    ) -> List[str]:
        """
        Cancel every live session matching ``predicate``.

        Used to drop a whole group at once, e.g. all letters for a patient:
        ``cancel_where(lambda s: s.request.metadata.get("patientId") == 42)``.

        Returns:
            List[str]: Target ids whose session was cancelled
        """
        cancelled = []
        for target_id in self.active_targets():
            live = self._live[target_id]
            if predicate(live.session) and self._cancel_live(live, reason=reason):
                cancelled.append(target_id)
        if cancelled:
            self._log.info("session.cancel_where", targets=cancelled, reason=reason)
        return cancelled

    async def restart(
        self, target_id: str, variables: Optional[Mapping[str, str]] = None
    ) -> StreamSession:
        """
        Regenerate a target: cancel, then start again with its last request.

        The bound document id is kept, so the new result is saved as an
        update of the same document.

        Raises:
            InvalidSessionStateError: If the target was never started
        """
        previous = self._last_requests.get(target_id)
        if previous is None:
            raise InvalidSessionStateError(f"No generation to restart for {target_id}")

        request = previous.with_variables(
            previous.variables if variables is None else variables
        )
        live = self._live.get(target_id)
        if live is not None:
            self._cancel_live(live, reason="Regenerating")
        return await self._launch(request)

    async def retry_persist(self, target_id: str) -> StreamSession:
        """
        Retry only the save step of a session whose persistence failed.

        Raises:
            InvalidSessionStateError: If the live session did not fail to persist
        """
        live = self._live.get(target_id)
        if live is None or not live.session.can_retry_persist():
            raise InvalidSessionStateError(
                f"Target {target_id} has no failed save to retry"
            )

        session = live.session
        session.error = None
        session.transition_to(SessionState.PERSISTING)
        self._log.info(
            "session.persist.retry", target_id=target_id, session_id=session.session_id
        )
        live.persist_task = asyncio.create_task(
            self._persist(live, session.accumulated_text)
        )
        await live.persist_task
        return session

    def bind(self, target_id: str, document_id: str) -> None:
        """
        Attach an existing backend document to a target.

        Raises:
            InvalidSessionStateError: If the target is bound to another document
        """
        current = self._bound_ids.get(target_id)
        if current is not None and current != document_id:
            raise InvalidSessionStateError(
                f"Target {target_id} is already bound to document {current}"
            )
        self._bound_ids[target_id] = document_id

    def bound_id(self, target_id: str) -> Optional[str]:
        return self._bound_ids.get(target_id)

    def session(self, target_id: str) -> Optional[StreamSession]:
        """Latest session for a target, live or terminal."""
        live = self._live.get(target_id)
        return live.session if live else None

    def active_targets(self) -> List[str]:
        return [
            target_id
            for target_id, live in self._live.items()
            if live.session.state.is_active()
        ]

    def forget(self, target_id: str) -> bool:
        """
        Drop everything kept for a finished target: last session, last
        request and bound document id.

        Returns:
            bool: True if anything was known about the target

        Raises:
            InvalidSessionStateError: If a session or save is still running
        """
        live = self._live.get(target_id)
        if live is not None and (
            live.session.state.is_active()
            or (live.persist_task is not None and not live.persist_task.done())
        ):
            raise InvalidSessionStateError(
                f"Target {target_id} still has a running session"
            )

        removed = [
            registry.pop(target_id, None)
            for registry in (
                self._live,
                self._bound_ids,
                self._last_requests,
                self._persist_locks,
            )
        ]
        known = any(item is not None for item in removed)
        if known:
            self._log.info("session.forget", target_id=target_id)
        return known

    async def shutdown(self) -> None:
        """Cancel every live session and wait for in-flight saves."""
        for target_id in self.active_targets():
            self._cancel_live(self._live[target_id], reason="Shutting down")

        pending = [
            live.persist_task
            for live in self._live.values()
            if live.persist_task is not None and not live.persist_task.done()
        ]
        if pending:
            await asyncio.wait(pending)
        self._log.info("session_manager.shutdown", awaited_saves=len(pending))

    # ---------- SESSION LIFECYCLE ----------

    async def _launch(self, request: GenerationRequest) -> StreamSession:
        target_id = request.target_id
        previous = self._live.get(target_id)
        if previous is not None:
            self._cancel_live(previous, reason="Replaced by a new session")

        session = StreamSession(
            target_id=target_id, request=request, _cancel_hook=self._cancel_session
        )
        live = _LiveSession(session=session)
        self._live[target_id] = live
        self._last_requests[target_id] = request

        session.transition_to(SessionState.STARTING)
        record_session_started()
        self._log.info(
            "session.start",
            target_id=target_id,
            session_id=session.session_id,
            template_id=request.template_id,
            bound_id=self._bound_ids.get(target_id),
        )

        try:
            template = await self._templates.resolve(request.template_id)
        except Exception as e:
            if self._is_live(live):
                self._finish_failed(live, self._as_generation_error(e, "resolve"))
            return session

        if not self._is_live(live):
            return session

        stream_request = self._build_stream_request(request, template)
        accumulator = TokenAccumulator(
            on_snapshot=partial(self._handle_snapshot, live),
            on_completed=partial(self._handle_completed, live),
            on_failed=partial(self._handle_failed, live),
            expected_length=self._progress.expected_length(request.variables),
            progress_cap=self._progress.cap,
            min_length=self._min_result_length,
        )
        live.accumulator = accumulator

        try:
            handle = await self._transport.open(
                self._endpoint, stream_request.to_payload(), accumulator
            )
        except Exception as e:
            accumulator.detach()
            if self._is_live(live):
                self._finish_failed(live, self._as_generation_error(e, "open"))
            return session

        live.handle = handle
        if not self._is_live(live):
            # Cancelled or replaced while the connection was opening
            handle.close()
            return session

        self._ensure_streaming(session)
        return session

    def _build_stream_request(
        self, request: GenerationRequest, template: TemplateRecord
    ) -> StreamRequest:
        unfilled = [
            name
            for name in placeholder_names(template.instruction_body)
            if not request.variables.get(name)
        ]
        if unfilled:
            # Unknown placeholders resolve to empty text
            self._log.info(
                "session.placeholders.unfilled",
                target_id=request.target_id,
                template_id=template.id,
                names=unfilled,
            )

        return StreamRequest(
            prompt=substitute(template.instruction_body, request.variables),
            role_text=template.role_text,
            letter_type=request.template_id,
            model=self._model,
            temperature=template.temperature,
            max_tokens=template.max_tokens,
            target_id=request.target_id,
        )

    def _as_generation_error(self, error: Exception, step: str) -> GenerationError:
        if isinstance(error, GenerationError):
            return error
        self._log.error(
            "session.unexpected_error",
            step=step,
            error_type=error.__class__.__name__,
            exc_info=error,
        )
        wrapped = GenerationError(
            str(error) or error.__class__.__name__, "UNEXPECTED_ERROR"
        )
        wrapped.__cause__ = error
        return wrapped

    def _is_live(self, live: _LiveSession) -> bool:
        return (
            self._live.get(live.session.target_id) is live
            and live.session.state.is_active()
        )

    def _ensure_streaming(self, session: StreamSession) -> None:
        if session.state is SessionState.STARTING:
            session.transition_to(SessionState.STREAMING)

    # ---------- ACCUMULATOR CALLBACKS ----------

    def _handle_snapshot(
        self, live: _LiveSession, text: str, is_final: bool, progress: int
    ) -> None:
        if not self._is_live(live):
            return
        session = live.session
        self._ensure_streaming(session)
        session.accumulated_text = text
        self._notify_snapshot(
            Snapshot(
                session_id=session.session_id,
                target_id=session.target_id,
                text=text,
                is_final=is_final,
                progress=progress,
            )
        )

    def _handle_completed(self, live: _LiveSession, text: str) -> None:
        if not self._is_live(live):
            return
        session = live.session
        self._ensure_streaming(session)
        session.accumulated_text = text
        session.transition_to(SessionState.PERSISTING)
        live.persist_task = asyncio.create_task(self._persist(live, text))

    def _handle_failed(self, live: _LiveSession, error: GenerationError) -> None:
        if not self._is_live(live):
            return
        self._finish_failed(live, error)

    # ---------- PERSISTENCE ----------

    async def _persist(self, live: _LiveSession, text: str) -> None:
        session = live.session
        target_id = session.target_id
        metadata = self._document_metadata(session.request)
        lock = self._persist_locks.setdefault(target_id, asyncio.Lock())
        bind_context(target_id=target_id, session_id=session.session_id)

        # Serialized per target so a second session sees the id bound by the first
        async with lock:
            bound_id = self._bound_ids.get(target_id)
            op = "create" if bound_id is None else "update"
            started = time.perf_counter()
            try:
                if bound_id is None:
                    document_id = await self._documents.create_document(text, metadata)
                    self._bound_ids[target_id] = document_id
                else:
                    await self._documents.update_document(bound_id, text, metadata)
                    document_id = bound_id
            except Exception as e:
                failure = PersistenceFailureError(target_id, str(e) or e.__class__.__name__)
                failure.__cause__ = e
                self._log.error(
                    "session.persist.failed",
                    target_id=target_id,
                    session_id=session.session_id,
                    op=op,
                    error=str(e),
                )
                if session.state is SessionState.PERSISTING:
                    self._finish_failed(live, failure, keep_text=True)
                return
            finally:
                observe_persist(op, time.perf_counter() - started)

        self._log.info(
            "session.persist.ok",
            target_id=target_id,
            session_id=session.session_id,
            op=op,
            document_id=document_id,
        )
        if session.state is not SessionState.PERSISTING:
            # Cancelled while saving; the binding above still holds
            return

        session.document_id = document_id
        session.transition_to(SessionState.DONE)
        record_session_finished(SessionState.DONE.value)
        self._notify_terminal(
            TerminalNotice(
                session_id=session.session_id,
                target_id=target_id,
                state=SessionState.DONE,
                document_id=document_id,
            )
        )

    def _document_metadata(self, request: GenerationRequest) -> Dict[str, Any]:
        return {
            "type": request.template_id,
            "status": "created",
            "priority": "medium",
            "notes": "",
            **request.metadata,
        }

    # ---------- TERMINATION ----------

    def _cancel_session(self, session: StreamSession) -> bool:
        live = self._live.get(session.target_id)
        if live is None or live.session is not session:
            return False
        return self._cancel_live(live, reason="Cancelled by user")

    def _cancel_live(self, live: _LiveSession, reason: str) -> bool:
        session = live.session
        if not session.state.can_be_cancelled():
            return False

        session.accumulated_text = ""
        session.transition_to(SessionState.CANCELLED)
        self._close_stream(live)
        record_session_finished(SessionState.CANCELLED.value)
        self._log.info(
            "session.cancelled",
            target_id=session.target_id,
            session_id=session.session_id,
            reason=reason,
        )
        self._notify_terminal(
            TerminalNotice(
                session_id=session.session_id,
                target_id=session.target_id,
                state=SessionState.CANCELLED,
                reason=reason,
            )
        )
        return True

    def _finish_failed(
        self, live: _LiveSession, error: GenerationError, keep_text: bool = False
    ) -> None:
        session = live.session
        session.fail(error, keep_text=keep_text)
        self._close_stream(live)
        record_session_finished(SessionState.FAILED.value)
        self._log.warning(
            "session.failed",
            target_id=session.target_id,
            session_id=session.session_id,
            code=error.code,
            error=error.message,
        )
        self._notify_terminal(
            TerminalNotice(
                session_id=session.session_id,
                target_id=session.target_id,
                state=SessionState.FAILED,
                reason=error.message,
                error=error,
            )
        )

    def _close_stream(self, live: _LiveSession) -> None:
        if live.accumulator is not None:
            live.accumulator.detach()
        if live.handle is not None:
            live.handle.close()

    # ---------- UI NOTIFICATION ----------

    def _notify_snapshot(self, snapshot: Snapshot) -> None:
        try:
            self._observer.on_snapshot(snapshot)
        except Exception:
            self._log.exception(
                "observer.snapshot.failed", session_id=snapshot.session_id
            )

    def _notify_terminal(self, notice: TerminalNotice) -> None:
        try:
            self._observer.on_terminal(notice)
        except Exception:
            self._log.exception(
                "observer.terminal.failed", session_id=notice.session_id
            )
