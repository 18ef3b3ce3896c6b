"""llamacpp-cli command line."""

import asyncio

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from llamacpp_cli import __version__
from llamacpp_cli.config import ClientSettings, get_settings
from llamacpp_cli.driver import MODEL_LABEL, InteractiveDriver
from llamacpp_cli.logging_config import intercept_standard_logging, setup_logging
from llamacpp_cli.transport import HttpTransport

app = typer.Typer(
    name="llamacpp-cli",
    help="Chat with a llama.cpp completion server from the terminal",
    no_args_is_help=True,
)
console = Console()

ServerOption = typer.Option(None, "--server", "-s", help="Inference server host")
PortOption = typer.Option(None, "--port", "-p", min=1, max=65535, help="Inference server port")
EndpointOption = typer.Option(None, "--endpoint", "-e", help="Completion endpoint path")
ModelOption = typer.Option(None, "--model", "-m", help="Model name sent with each request")
MaxTokensOption = typer.Option(None, "--max-tokens", help="Maximum tokens to generate")
TemperatureOption = typer.Option(None, "--temperature", "-t", help="Sampling temperature")
RetryDelayOption = typer.Option(
    None, "--retry-delay", min=0.0, help="Seconds between failed attempts"
)
TimeoutOption = typer.Option(
    None,
    "--timeout",
    min=0.0,
    help="Network timeout in seconds (default: wait forever)",
)
LogLevelOption = typer.Option(None, "--log-level", help="Console log level")


def _build_settings(**overrides) -> ClientSettings:
    """Apply command line overrides on top of the environment settings."""
    updates = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ClientSettings(**{**get_settings().model_dump(), **updates})
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e


def _configure_logging(settings: ClientSettings) -> None:
    setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    intercept_standard_logging()


@app.command()
def chat(
    server: str = ServerOption,
    port: int = PortOption,
    endpoint: str = EndpointOption,
    model: str = ModelOption,
    max_tokens: int = MaxTokensOption,
    temperature: float = TemperatureOption,
    retry_delay: float = RetryDelayOption,
    timeout: float = TimeoutOption,
    log_level: str = LogLevelOption,
):
    """Start an interactive chat session. Type 'exit' to quit."""
    settings = _build_settings(
        server=server,
        port=port,
        endpoint=endpoint,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        retry_delay_seconds=retry_delay,
        request_timeout_seconds=timeout,
        log_level=log_level,
    )
    _configure_logging(settings)

    console.print(f"[green]Chatting with {settings.url}[/green] (type 'exit' to quit)")
    try:
        asyncio.run(_chat(settings))
    except KeyboardInterrupt:
        console.print()
    console.print("[yellow]Goodbye[/yellow]")


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    server: str = ServerOption,
    port: int = PortOption,
    endpoint: str = EndpointOption,
    model: str = ModelOption,
    max_tokens: int = MaxTokensOption,
    temperature: float = TemperatureOption,
    retry_delay: float = RetryDelayOption,
    timeout: float = TimeoutOption,
    log_level: str = LogLevelOption,
):
    """Send a single prompt and print the completion."""
    settings = _build_settings(
        server=server,
        port=port,
        endpoint=endpoint,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        retry_delay_seconds=retry_delay,
        request_timeout_seconds=timeout,
        log_level=log_level,
    )
    _configure_logging(settings)

    try:
        reply = asyncio.run(_ask(settings, prompt))
    except KeyboardInterrupt:
        raise typer.Exit(130)
    console.print(f"{MODEL_LABEL} {escape(reply)}")


@app.command()
def version():
    """Show version information."""
    console.print(f"llamacpp-cli v{__version__}")


async def _chat(settings: ClientSettings) -> None:
    async with HttpTransport(timeout=settings.request_timeout_seconds) as transport:
        driver = InteractiveDriver(settings, transport, console=console)
        await driver.run()


async def _ask(settings: ClientSettings, prompt: str) -> str:
    async with HttpTransport(timeout=settings.request_timeout_seconds) as transport:
        async with InteractiveDriver(settings, transport, console=console) as driver:
            return await driver.ask(prompt)


if __name__ == "__main__":
    app()
