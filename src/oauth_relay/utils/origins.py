"""Redirect URI origin allowlist."""

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

from oauth_relay.exceptions import RedirectURIError

logger = logging.getLogger("oauth-relay.utils.origins")

DEFAULT_ALLOWED_ORIGINS = ("http://localhost:5173",)

# Schemes that carry a network origin, with their default ports
_DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}

OPAQUE_ORIGIN = "null"


def origin_of(uri: str) -> str:
    """Extract the origin (scheme://host[:port]) of an absolute URI.

    Default ports are elided and the scheme and host are lower-cased. URIs
    whose scheme has no network origin (``myapp://cb``, ``mailto:x``) have
    the opaque origin ``"null"``.

    Args:
        uri: The URI to parse.

    Returns:
        The serialized origin.

    Raises:
        RedirectURIError: If the value is not a parseable absolute URI.
    """
    if not isinstance(uri, str) or not uri.strip():
        raise RedirectURIError("redirect_uri is not an absolute URI")

    try:
        parts = urlsplit(uri.strip())
        port = parts.port
    except ValueError as e:
        raise RedirectURIError(f"redirect_uri could not be parsed: {e}") from e

    scheme = parts.scheme.lower()
    if not scheme:
        raise RedirectURIError("redirect_uri has no scheme")

    if scheme not in _DEFAULT_PORTS:
        return OPAQUE_ORIGIN

    host = parts.hostname
    if not host:
        raise RedirectURIError("redirect_uri has no host")
    if ":" in host:
        host = f"[{host}]"

    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


class OriginAllowlist:
    """Immutable set of origins that redirect URIs may point to."""

    def __init__(self, origins: Iterable[str] = ()) -> None:
        self._origins = frozenset(origins)

    def __contains__(self, origin: object) -> bool:
        return origin in self._origins

    def __iter__(self):
        return iter(sorted(self._origins))

    def __len__(self) -> int:
        return len(self._origins)

    def __repr__(self) -> str:
        return f"OriginAllowlist({sorted(self._origins)!r})"

    def is_allowed(self, redirect_uri: str) -> bool:
        """Check whether a redirect URI's origin is allowlisted.

        Matching is exact: no wildcards and no subdomain matching.

        Args:
            redirect_uri: Caller-supplied redirect URI.

        Returns:
            True if the URI's origin is in the allowlist.

        Raises:
            RedirectURIError: If the URI is not a parseable absolute URI.
        """
        return origin_of(redirect_uri) in self._origins

    @classmethod
    def from_string(cls, value: str | None) -> "OriginAllowlist":
        """Create an allowlist from a comma-separated string.

        Args:
            value: Comma-separated origins, or None to use the defaults.

        Returns:
            The parsed allowlist. Blank entries are ignored.
        """
        if value is None:
            return cls(DEFAULT_ALLOWED_ORIGINS)

        origins = [entry.strip() for entry in value.split(",") if entry.strip()]
        for entry in origins:
            try:
                normalized = origin_of(entry)
            except RedirectURIError:
                normalized = None
            if normalized != entry:
                logger.warning(
                    f"Allowed origin '{entry}' is not a bare origin and will never match "
                    f"(expected something like 'https://app.example.com')"
                )
        if not origins:
            logger.warning("ALLOWED_ORIGINS is empty, every redirect_uri will be rejected")
        return cls(origins)
