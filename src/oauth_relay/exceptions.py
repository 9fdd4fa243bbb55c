class OAuthRelayError(Exception):
    """Base error for the OAuth relay."""

    pass


class ConfigurationError(OAuthRelayError):
    """Raised when process configuration cannot produce a usable relay.

    Only raised at startup; the server must not start when this is raised.
    """

    pass


class RedirectURIError(OAuthRelayError, ValueError):
    """Raised when a redirect_uri is not a parseable absolute URI."""

    pass
