"""Coordinator Agent - Main Entry Point.

A2A-compliant coordinator that delegates calculations to the calculator agent.
"""

import logging

import uvicorn

from a2a_delegate.config import Settings, configure_logging
from coordinator_agent.server import create_a2a_app

logger = logging.getLogger(__name__)


def main():
    """Run the Coordinator agent server."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_a2a_app(settings)
    port = settings.coordinator_port

    logger.info(f"Coordinator Agent running on port {port}")
    logger.info(f"A2A Endpoint: http://localhost:{port}/")
    logger.info(f"Agent Card: http://localhost:{port}/.well-known/agent-card.json")
    if settings.calculator_url:
        logger.info(f"Delegating to {settings.calculator_agent_name} at {settings.calculator_url}")
    else:
        logger.warning("CALCULATOR_URL is not set; every delegation will fail")

    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
