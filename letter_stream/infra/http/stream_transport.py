"""
HTTP event-stream transport for the letter generation endpoint.

One outbound POST carries the resolved instruction; the response is read as
server-sent events, one JSON frame per event. Frames are handed to the
observer in arrival order until the stream completes, fails, or the handle is
closed. Once a handle is closed nothing else reaches its observer.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from letter_stream.application.ports import (
    CredentialProviderPort,
    StreamHandlePort,
    StreamObserverPort,
    StreamTransportPort,
)
from letter_stream.domain.exceptions import (
    AuthMissingError,
    GenerationError,
    TransportError,
)
from letter_stream.infra.config.logging_config import bind_context, get_logger
from letter_stream.infra.http.sse import SSEDecoder, parse_frame


class HandleState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class HttpStreamHandle(StreamHandlePort):
    def __init__(self, observer: StreamObserverPort, endpoint: str):
        self._observer = observer
        self._endpoint = endpoint
        self._state = HandleState.CONNECTING
        self._task: Optional[asyncio.Task] = None
        self._log = get_logger("infra.stream")

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is HandleState.CLOSED

    def close(self) -> None:
        """Stop delivery now; connection teardown may finish later."""
        if self.closed:
            return
        self._shutdown()
        self._log.info("stream.closed", endpoint=self._endpoint)

    async def wait(self) -> None:
        """Wait for the reader task to exit (cancelled or not)."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    def _mark_streaming(self) -> None:
        if self._state is HandleState.CONNECTING:
            self._state = HandleState.STREAMING

    def _shutdown(self) -> None:
        self._state = HandleState.CLOSED
        task = self._task
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            # The reader notices the closed state itself when closed from a callback
            if task is not current:
                task.cancel()

    def _emit(self, text: str) -> None:
        if not self.closed:
            self._observer.on_fragment(text)

    def _complete(self) -> None:
        if self.closed:
            return
        self._shutdown()
        self._observer.on_complete()

    def _fail(self, error: GenerationError) -> None:
        if self.closed:
            return
        self._shutdown()
        self._observer.on_error(error)


class HttpStreamTransport(StreamTransportPort):
    """
    Streams generation frames from the backend with httpx.

    The transport never retries and imposes no read timeout of its own; a
    stuck stream is ended by closing its handle.
    """

    def __init__(self, client: httpx.AsyncClient, credentials: CredentialProviderPort):
        self._client = client
        self._credentials = credentials
        self._log = get_logger("infra.stream")

    async def open(
        self, endpoint: str, payload: Dict[str, Any], observer: StreamObserverPort
    ) -> HttpStreamHandle:
        handle = HttpStreamHandle(observer, endpoint)

        token = await self._credentials.get_token()
        if not token or not token.strip():
            self._log.warning("stream.auth_missing", endpoint=endpoint)
            handle._fail(AuthMissingError())
            return handle

        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {token}",
        }
        self._log.info(
            "stream.open", endpoint=endpoint, letter_type=payload.get("letterType")
        )
        handle._attach(asyncio.create_task(self._run(handle, endpoint, payload, headers)))
        return handle

    async def _run(
        self,
        handle: HttpStreamHandle,
        endpoint: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> None:
        # Scoped to this reader task
        bind_context(endpoint=endpoint, target_id=payload.get("targetId"))
        decoder = SSEDecoder()
        try:
            async with self._client.stream(
                "POST", endpoint, json=payload, headers=headers
            ) as response:
                if handle.closed:
                    return
                if response.status_code != 200:
                    await response.aread()
                    handle._fail(
                        TransportError(
                            f"HTTP {response.status_code}: {response.reason_phrase}",
                            status_code=response.status_code,
                        )
                    )
                    return

                handle._mark_streaming()
                async for line in response.aiter_lines():
                    data = decoder.feed(line)
                    if data is not None:
                        self._dispatch(handle, data)
                    if handle.closed:
                        return

                data = decoder.flush()
                if data is not None:
                    self._dispatch(handle, data)

            if not handle.closed:
                self._log.warning("stream.ended_early", endpoint=endpoint)
                handle._fail(TransportError("Stream ended before completion"))

        except httpx.HTTPError as e:
            if not handle.closed:
                self._log.error("stream.transport_error", endpoint=endpoint, error=str(e))
                handle._fail(TransportError(str(e) or e.__class__.__name__))
        except Exception as e:
            if not handle.closed:
                self._log.exception("stream.reader_crashed", endpoint=endpoint)
                handle._fail(
                    TransportError(f"Stream reader failed: {e.__class__.__name__}: {e}")
                )

    def _dispatch(self, handle: HttpStreamHandle, data: str) -> None:
        frame = parse_frame(data)
        if frame is None:
            # Keep-alives and comments are not JSON
            self._log.debug("stream.frame.skipped", size=len(data))
            return

        if not frame.success:
            self._log.error("stream.backend_error", error=frame.error)
            handle._fail(TransportError(frame.error or "Backend streaming failed"))
            return

        if frame.is_complete:
            self._log.info("stream.complete")
            handle._complete()
            return

        if frame.content:
            handle._emit(frame.content)
