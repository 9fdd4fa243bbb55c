"""Stateless relay completing GitHub OAuth code exchanges for registered apps."""

import logging
import os
import sys

__version__ = "1.0.0"

logger = logging.getLogger("oauth-relay")


def main() -> None:
    """Start the relay server."""
    import uvicorn

    from oauth_relay.config import DEFAULT_ENVIRONMENT, DEFAULT_LOG_LEVEL, RelayConfig
    from oauth_relay.exceptions import ConfigurationError
    from oauth_relay.servers import create_app
    from oauth_relay.utils.logging import setup_logging

    try:
        config = RelayConfig.from_env()
    except ConfigurationError as e:
        setup_logging(
            os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL),
            os.getenv("ENVIRONMENT", DEFAULT_ENVIRONMENT),
        )
        logger.critical(f"Invalid configuration, refusing to start: {e}")
        sys.exit(1)

    setup_logging(
        config.log_level,
        config.environment,
        secrets=config.secrets.secret_values(),
    )
    app = create_app(config)

    logger.info(
        "GitHub OAuth relay server started",
        extra={"port": config.port, "host": config.host, "version": __version__},
    )
    # log_config=None keeps the handlers installed by setup_logging
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


__all__ = ["__version__", "main"]
