"""Client credential registry for the OAuth relay.

Each registered application is declared in the environment as::

    GITHUB_SECRET_<NAME>=<client_id>|<client_secret>

The registry is built once at startup and never changes afterwards. Lookups
are by public client id only; the registry cannot be enumerated through the
HTTP surface.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from oauth_relay.exceptions import ConfigurationError

logger = logging.getLogger("oauth-relay.utils.credentials")

SECRET_ENV_PREFIX = "GITHUB_SECRET_"
SECRET_FIELD_DELIMITER = "|"


@dataclass(frozen=True)
class SecretRecord:
    """Private OAuth credentials of one registered application."""

    name: str
    client_id: str
    client_secret: str = field(repr=False)


class SecretRegistry(Mapping[str, SecretRecord]):
    """Immutable mapping from client_id to its SecretRecord."""

    def __init__(self, records: list[SecretRecord] | None = None) -> None:
        """Build the registry.

        Args:
            records: Secret records to register.

        Raises:
            ConfigurationError: If two records declare the same client_id.
        """
        by_client_id: dict[str, SecretRecord] = {}
        for record in records or []:
            existing = by_client_id.get(record.client_id)
            if existing is not None:
                raise ConfigurationError(
                    f"Duplicate client_id in {SECRET_ENV_PREFIX}{record.name.upper()} "
                    f"(already declared by {SECRET_ENV_PREFIX}{existing.name.upper()})"
                )
            by_client_id[record.client_id] = record
        self._records = MappingProxyType(by_client_id)

    def __getitem__(self, client_id: str) -> SecretRecord:
        return self._records[client_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"SecretRegistry(apps={sorted(r.name for r in self._records.values())})"

    def resolve(self, client_id: object) -> SecretRecord | None:
        """Look up the credentials for a client id.

        Args:
            client_id: Public client identifier supplied by a caller.

        Returns:
            The SecretRecord, or None if the id is not registered or is not
            a string.
        """
        if not isinstance(client_id, str):
            return None
        return self._records.get(client_id)

    def secret_values(self) -> frozenset[str]:
        """Return every registered client secret (for log redaction)."""
        return frozenset(r.client_secret for r in self._records.values())

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "SecretRegistry":
        """Create the registry from GITHUB_SECRET_<NAME> entries.

        Args:
            environ: Environment mapping to scan.

        Returns:
            Registry with one record per matching entry.

        Raises:
            ConfigurationError: If an entry is malformed or a client_id is
                declared twice.
        """
        records = [
            parse_secret_entry(key[len(SECRET_ENV_PREFIX) :], value)
            for key, value in sorted(environ.items())
            if key.startswith(SECRET_ENV_PREFIX)
        ]
        registry = cls(records)
        logger.debug(f"Loaded {len(registry)} client credential(s) from environment")
        return registry


def parse_secret_entry(suffix: str, value: str) -> SecretRecord:
    """Parse one ``client_id|client_secret`` entry.

    Args:
        suffix: The part of the variable name after GITHUB_SECRET_.
        value: The variable's value.

    Returns:
        The parsed SecretRecord.

    Raises:
        ConfigurationError: If the name is empty, the value does not have
            exactly two fields, or either field is empty.
    """
    variable = f"{SECRET_ENV_PREFIX}{suffix}"
    if not suffix:
        raise ConfigurationError(f"{variable} must have an application name suffix")

    parts = value.split(SECRET_FIELD_DELIMITER)
    if len(parts) != 2:
        # Never echo the value, it contains the secret
        raise ConfigurationError(
            f"{variable} must have the form client_id{SECRET_FIELD_DELIMITER}client_secret "
            f"(got {len(parts)} field(s))"
        )

    client_id, client_secret = (part.strip() for part in parts)
    if not client_id or not client_secret:
        raise ConfigurationError(f"{variable} has an empty client_id or client_secret")

    return SecretRecord(name=suffix.lower(), client_id=client_id, client_secret=client_secret)
