"""Process configuration for the OAuth relay."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from dotenv import load_dotenv

from oauth_relay.exceptions import ConfigurationError
from oauth_relay.utils.credentials import SECRET_ENV_PREFIX, SecretRegistry
from oauth_relay.utils.origins import OriginAllowlist

logger = logging.getLogger("oauth-relay.config")

DEFAULT_PORT = 3001
DEFAULT_HOST = "0.0.0.0"  # noqa: S104 - container deployments bind all interfaces
DEFAULT_LOG_LEVEL = "info"
DEFAULT_ENVIRONMENT = "development"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105 - public endpoint URL


@dataclass(frozen=True)
class RelayConfig:
    """Validated configuration of one relay process."""

    secrets: SecretRegistry
    allowed_origins: OriginAllowlist = field(default_factory=OriginAllowlist)
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    log_level: str = DEFAULT_LOG_LEVEL
    environment: str = DEFAULT_ENVIRONMENT
    token_url: str = GITHUB_TOKEN_URL

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, load_env_file: bool = True
    ) -> "RelayConfig":
        """Create configuration from environment variables.

        Environment variables:
        - PORT: Listen port (default: 3001)
        - HOST: Listen address (default: 0.0.0.0)
        - LOG_LEVEL: Log level (default: info)
        - ENVIRONMENT: Environment tag (default: development)
        - GITHUB_SECRET_<NAME>: "client_id|client_secret", at least one required
        - ALLOWED_ORIGINS: Comma-separated origins (default: http://localhost:5173)
        - GITHUB_TOKEN_URL: Upstream token endpoint (default: GitHub's)

        Args:
            environ: Mapping to read instead of os.environ.
            load_env_file: Load a .env file into os.environ first. Ignored
                when environ is given.

        Returns:
            Validated RelayConfig.

        Raises:
            ConfigurationError: If any value is invalid or no client
                credentials are configured.
        """
        if environ is None:
            if load_env_file:
                load_dotenv()
            environ = os.environ

        port_str = environ.get("PORT") or str(DEFAULT_PORT)
        try:
            port = int(port_str)
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got '{port_str}'") from None
        if not 0 < port < 65536:
            raise ConfigurationError(f"PORT must be between 1 and 65535, got {port}")

        secrets = SecretRegistry.from_env(environ)
        if not secrets:
            raise ConfigurationError(
                f"No client credentials configured. Set at least one "
                f"{SECRET_ENV_PREFIX}<NAME>=client_id|client_secret variable"
            )

        token_url = environ.get("GITHUB_TOKEN_URL") or GITHUB_TOKEN_URL
        if not token_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"GITHUB_TOKEN_URL must be an HTTP/HTTPS URL, got '{token_url}'")

        config = cls(
            secrets=secrets,
            allowed_origins=OriginAllowlist.from_string(environ.get("ALLOWED_ORIGINS")),
            port=port,
            host=environ.get("HOST") or DEFAULT_HOST,
            log_level=(environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).lower(),
            environment=environ.get("ENVIRONMENT") or DEFAULT_ENVIRONMENT,
            token_url=token_url,
        )
        logger.debug(f"Loaded configuration: {config}")
        return config
