"""Interactive driver.

Reads user text, turns it into a request, hands it to the model I/O worker
and prints the reply. Only one request is ever in flight: the driver does
not read the next line before the previous reply has been printed.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger
from rich.console import Console
from rich.markup import escape

from llamacpp_cli.config import ClientSettings
from llamacpp_cli.handoff import HandoffQueue
from llamacpp_cli.prompt import GEMMA_TEMPLATE, ChatTemplate, format_prompt, strip_turn_end
from llamacpp_cli.schemas import GenerationParameters
from llamacpp_cli.transport import Transport
from llamacpp_cli.worker import BackoffPolicy, FixedBackoff, ModelIOWorker

EXIT_COMMAND = "exit"
USER_LABEL = "[bold green]User:[/bold green] "
MODEL_LABEL = "[bold cyan]Model:[/bold cyan]"

# Returns None on end of input
ReadLine = Callable[[str], Awaitable[str | None]]

T = TypeVar("T")


class WorkerStoppedError(RuntimeError):
    """Raised when the worker exits while the driver waits on it."""


class InteractiveDriver:
    """Foreground half of the pipeline; owns the worker's lifecycle.

    Usage:
        async with InteractiveDriver(settings, transport) as driver:
            reply = await driver.ask("hello")

    or run() for the full read/print loop.
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport: Transport,
        *,
        read_line: ReadLine | None = None,
        console: Console | None = None,
        backoff: BackoffPolicy | None = None,
        template: ChatTemplate = GEMMA_TEMPLATE,
    ):
        self.settings = settings
        self.template = template
        self.console = console or Console()
        self._read_line = read_line or self._console_read_line
        self._parameters = settings.generation_template()

        self.requests: HandoffQueue[GenerationParameters] = HandoffQueue()
        self.responses: HandoffQueue[str] = HandoffQueue()
        self.worker = ModelIOWorker(
            transport,
            settings.url,
            self.requests,
            self.responses,
            backoff=backoff or FixedBackoff(settings.retry_delay_seconds),
        )

    async def __aenter__(self) -> "InteractiveDriver":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        await self.worker.start()

    async def stop(self) -> None:
        await self.worker.stop(grace=self.settings.retry_delay_seconds)

    def build_request(self, text: str) -> GenerationParameters:
        """Format text with the chat template and merge it into the template parameters."""
        return self._parameters.with_prompt(format_prompt(text, self.template))

    async def ask(self, text: str) -> str:
        """Send one prompt through the worker and wait for its reply.

        Blocks for as long as the worker keeps retrying.

        Raises:
            WorkerStoppedError: If the worker exits before replying, or has
                already crashed (a crashed worker is not restarted; stop() reports it)
        """
        task = self.worker.task
        if task is not None and task.done() and not task.cancelled() and task.exception():
            raise WorkerStoppedError("Model I/O worker failed") from task.exception()
        if not self.worker.is_running:
            await self.start()

        await self._while_worker_runs(self.requests.put(self.build_request(text)))
        reply = await self._while_worker_runs(self.responses.get())
        return strip_turn_end(reply, self.template)

    async def run(self) -> None:
        """Read/print loop. Ends on 'exit' or end of input."""
        await self.start()
        try:
            while True:
                line = await self._read_line(USER_LABEL)
                if line is None or line.strip() == EXIT_COMMAND:
                    break
                text = line.strip()
                if not text:
                    continue

                reply = await self.ask(text)
                self.console.print(f"{MODEL_LABEL} {escape(reply)}")
        finally:
            await self.stop()

    async def _while_worker_runs(self, awaitable: Awaitable[T]) -> T:
        """Await a hand-off operation, failing if the worker dies first."""
        operation = asyncio.ensure_future(awaitable)
        worker_task = self.worker.task
        if worker_task is None:
            return await operation

        try:
            await asyncio.wait({operation, worker_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            operation.cancel()
            raise

        if operation.done():
            return operation.result()

        operation.cancel()
        if not worker_task.cancelled() and worker_task.exception() is not None:
            raise WorkerStoppedError("Model I/O worker failed") from worker_task.exception()
        raise WorkerStoppedError("Model I/O worker stopped before replying")

    async def _console_read_line(self, label: str) -> str | None:
        """Read a line from the terminal without blocking the event loop."""
        try:
            return await asyncio.to_thread(self.console.input, label)
        except EOFError:
            logger.debug("End of input")
            return None
