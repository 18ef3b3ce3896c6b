"""Model I/O worker.

Background task that takes one request at a time from the inbound
hand-off, posts it to the completion server until an attempt succeeds,
and hands the completion text back on the outbound hand-off.

State machine:

    WAITING_FOR_REQUEST -> SENDING -> WAITING_FOR_REQUEST   (success)
    SENDING -> BACKOFF_SLEEP -> SENDING                     (transport failure)
    WAITING_FOR_REQUEST | BACKOFF_SLEEP -> CANCELLED        (cancel signal)

Retries are unbounded with a fixed delay: an unreachable server keeps the
worker retrying, and the driver waiting, until the session is cancelled.
"""

import asyncio
from enum import StrEnum
from typing import Protocol

from loguru import logger

from llamacpp_cli.handoff import HandoffQueue
from llamacpp_cli.schemas import CompletionResponse, GenerationParameters
from llamacpp_cli.transport import Transport, TransportError

DEFAULT_RETRY_DELAY = 1.0


class WorkerState(StrEnum):
    """Lifecycle state of the model I/O worker."""

    WAITING_FOR_REQUEST = "waiting_for_request"
    SENDING = "sending"
    BACKOFF_SLEEP = "backoff_sleep"
    CANCELLED = "cancelled"  # Terminal


class BackoffPolicy(Protocol):
    """Delay inserted between failed attempts."""

    async def sleep(self, attempt: int) -> None: ...


class FixedBackoff:
    """Wait the same delay after every failed attempt."""

    def __init__(self, delay: float = DEFAULT_RETRY_DELAY):
        self.delay = delay

    async def sleep(self, attempt: int) -> None:
        await asyncio.sleep(self.delay)


class NoBackoff:
    """Retry immediately, only yielding to the event loop."""

    delay = 0.0

    async def sleep(self, attempt: int) -> None:
        await asyncio.sleep(0)


class ModelIOWorker:
    """Sole consumer of the request hand-off and sole producer of replies.

    Cancellation is cooperative. The signal is observed while waiting for a
    request and after each backoff sleep; it never interrupts a POST in
    flight or a running sleep. stop() falls back to cancelling the task
    when the worker does not wind down within its grace period.
    """

    def __init__(
        self,
        transport: Transport,
        url: str,
        requests: HandoffQueue[GenerationParameters],
        responses: HandoffQueue[str],
        backoff: BackoffPolicy | None = None,
    ):
        """Initialize the worker.

        Args:
            transport: Performs one POST per attempt
            url: Completion endpoint URL
            requests: Inbound hand-off carrying fully formed parameters
            responses: Outbound hand-off carrying completion text
            backoff: Delay between failed attempts (default: 1 second)
        """
        self.transport = transport
        self.url = url
        self.requests = requests
        self.responses = responses
        self.backoff = backoff or FixedBackoff()

        self.attempts = 0
        self._state = WorkerState.WAITING_FOR_REQUEST
        self._cancelled = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Signal cancellation. Idempotent."""
        self._cancelled.set()

    async def start(self) -> None:
        """Start the worker loop as a background task."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self.run(), name="model-io-worker")

    async def stop(self, grace: float = DEFAULT_RETRY_DELAY) -> None:
        """Cancel the worker and wait for it to finish.

        Args:
            grace: Seconds to wait for a cooperative exit before the task
                is cancelled outright (e.g. stuck on a hung connection)

        Raises:
            Exception: Whatever unexpected error ended the worker loop
        """
        self.cancel()
        if self._task is None:
            self._state = WorkerState.CANCELLED
            return

        done, _ = await asyncio.wait({self._task}, timeout=grace)
        if not done:
            logger.warning(f"Model I/O worker still busy after {grace}s, cancelling task")
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            # A task cancelled before its first step never reaches run()'s cleanup
            self._state = WorkerState.CANCELLED

    async def run(self) -> None:
        """Worker loop. Returns once cancelled."""
        logger.info(f"Model I/O worker started for {self.url}")
        try:
            while True:
                request = await self._wait_for_request()
                if request is None:
                    break

                text = await self._send_until_success(request)
                if text is None:
                    break

                await self.responses.put(text)
        finally:
            self._state = WorkerState.CANCELLED
            logger.info("Model I/O worker stopped")

    async def _wait_for_request(self) -> GenerationParameters | None:
        """Wait for the next request, or None once cancelled."""
        self._state = WorkerState.WAITING_FOR_REQUEST
        if self._cancelled.is_set():
            return None

        get_task = asyncio.ensure_future(self.requests.get())
        cancel_task = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {get_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_task, cancel_task):
                if not task.done():
                    task.cancel()

        if cancel_task in done:
            if get_task in done:
                logger.debug("Cancelled with a request pending, abandoning it")
            return None
        return get_task.result()

    async def _send_until_success(self, request: GenerationParameters) -> str | None:
        """Post a request until an attempt succeeds.

        Returns:
            Completion text (empty when the response had no choices), or
            None when cancelled between attempts
        """
        payload = request.to_payload()
        self.attempts = 0

        while True:
            self._state = WorkerState.SENDING
            self.attempts += 1
            try:
                raw = await self.transport.post(self.url, payload)
            except TransportError as e:
                logger.warning(f"Attempt {self.attempts} failed: {e}")
                self._state = WorkerState.BACKOFF_SLEEP
                await self.backoff.sleep(self.attempts)
                if self._cancelled.is_set():
                    logger.info(f"Cancelled after {self.attempts} attempts, abandoning request")
                    return None
                continue

            response = CompletionResponse.decode(raw)
            if not response.choices:
                logger.warning("Completion response carried no choices")
            logger.debug(f"Completion received after {self.attempts} attempt(s)")
            return response.first_text()
