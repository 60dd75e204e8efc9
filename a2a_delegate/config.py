"""Environment-provided configuration.

Values come from the process environment (optionally seeded from a ``.env``
file) and are read once into a ``Settings`` instance.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .client import RetryConfig
from .dispatch import DEFAULT_TIMEOUT_SECONDS

LOG_FORMAT = "%(asctime)s (%(name)s) [%(levelname)s] %(message)s"


def _split(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for both agents."""
    calculator_url: str = ""
    calculator_agent_name: str = "calculator"
    bearer_token: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = 1
    runtime_url: str | None = None
    aws_region: str = "us-east-1"
    calculator_port: int = 9000
    coordinator_port: int = 8080
    accepted_tokens: frozenset[str] = frozenset()
    calculator_streaming: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()
        return cls(
            calculator_url=os.environ.get("CALCULATOR_URL", ""),
            calculator_agent_name=os.environ.get("CALCULATOR_AGENT_NAME", "calculator"),
            bearer_token=os.environ.get("BEARER_TOKEN") or None,
            timeout_seconds=float(
                os.environ.get("DELEGATION_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))
            ),
            max_attempts=int(os.environ.get("DELEGATION_MAX_ATTEMPTS", "1")),
            runtime_url=os.environ.get("AGENT_RUNTIME_URL") or None,
            aws_region=os.environ.get("AWS_REGION", "us-east-1"),
            calculator_port=int(os.environ.get("CALCULATOR_PORT", "9000")),
            coordinator_port=int(os.environ.get("COORDINATOR_PORT", "8080")),
            accepted_tokens=_split(os.environ.get("CALCULATOR_ACCEPTED_TOKENS")),
            calculator_streaming=os.environ.get("CALCULATOR_STREAMING", "false").lower() in ("1", "true", "yes"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(max_attempts=max(1, self.max_attempts))

    def advertised_url(self, port: int) -> str:
        """URL an agent puts in its own card."""
        return self.runtime_url or f"http://localhost:{port}/"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
