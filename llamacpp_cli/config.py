"""Client configuration.

Environment Variables:
    LLAMACPP_CLI_SERVER: Inference server host (default: localhost)
    LLAMACPP_CLI_PORT: Inference server port (default: 8000)
    LLAMACPP_CLI_ENDPOINT: Completion endpoint path (default: v1/completions)
    LLAMACPP_CLI_MODEL: Model name sent with each request (default: empty)
    LLAMACPP_CLI_RETRY_DELAY_SECONDS: Delay between failed attempts (default: 1.0)
    LLAMACPP_CLI_REQUEST_TIMEOUT_SECONDS: Network timeout (default: none)
    LLAMACPP_CLI_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR). Default: WARNING
    LLAMACPP_CLI_LOG_DIR: Log directory path (default: ~/.llamacpp-cli/logs/)
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from llamacpp_cli.schemas import GenerationParameters
from llamacpp_cli.transport import endpoint_url

DEFAULT_PORT = 8000
DEFAULT_ENDPOINT = "v1/completions"


class ClientSettings(BaseSettings):
    """llamacpp-cli settings.

    All settings can be configured via environment variables with the
    LLAMACPP_CLI_ prefix. For example, LLAMACPP_CLI_SERVER=backend points the
    client at the docker-compose service alias.

    The generation fields form the request template: every prompt typed by
    the user is merged into a copy of it.
    """

    model_config = SettingsConfigDict(
        env_prefix="LLAMACPP_CLI_",
        env_file=".env",
        extra="ignore",
    )

    # Inference server
    server: str = Field(default="localhost", description="Inference server host")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Inference server port")
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="Completion endpoint path")

    # Request template
    model: str = Field(default="", description="Model name sent with each request")
    top_k: int = 64
    top_p: float = 0.9
    repeat_penalty: float = 1.2
    temperature: float = 0.9
    stream: bool = False
    max_tokens: int = 32

    # Resilience
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed delay between failed attempts",
    )
    request_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Network timeout for a single attempt (None waits forever)",
    )

    # Logging
    log_level: str = "WARNING"
    log_dir: Path = Path.home() / ".llamacpp-cli" / "logs"

    @property
    def url(self) -> str:
        """Full URL of the completion endpoint."""
        return endpoint_url(self.server, self.port, self.endpoint)

    def generation_template(self) -> GenerationParameters:
        """Build the request template the driver merges prompts into."""
        return GenerationParameters(
            model=self.model,
            top_k=self.top_k,
            top_p=self.top_p,
            repeat_penalty=self.repeat_penalty,
            temperature=self.temperature,
            stream=self.stream,
            max_tokens=self.max_tokens,
        )


@lru_cache
def get_settings() -> ClientSettings:
    """Get cached settings instance."""
    return ClientSettings()
