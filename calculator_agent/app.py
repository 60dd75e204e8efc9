"""Calculator Agent - Main Entry Point.

A2A-compliant agent that evaluates arithmetic expressions.
"""

import logging

import uvicorn

from a2a_delegate.config import Settings, configure_logging
from calculator_agent.server import create_a2a_app

logger = logging.getLogger(__name__)


def main():
    """Run the Calculator agent server."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_a2a_app(settings)
    port = settings.calculator_port

    logger.info(f"Calculator Agent running on port {port}")
    logger.info(f"A2A Endpoint: http://localhost:{port}/")
    logger.info(f"Agent Card: http://localhost:{port}/.well-known/agent-card.json")
    logger.info(f"Streaming: {settings.calculator_streaming}")
    if settings.accepted_tokens:
        logger.info("Bearer authorization enforced")

    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
