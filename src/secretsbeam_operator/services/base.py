"""Base secret provider interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models import Secret, SecretAccess


class SecretProvider(Protocol):
    """Protocol defining the operations every secret backend implements.

    Providers record the handles they create into ``backend_ids`` of the
    model they receive, including on partial failure.
    """

    def init(self, config: dict[str, str]) -> None:
        """Configure the provider from an ExternalSecretProvider config map.

        Raises:
            ConfigError: If the configuration is malformed
        """
        ...

    def create_secret(self, secret: Secret, value: str) -> None:
        """Create the backend secret holding ``value``."""
        ...

    def update_secret(self, secret: Secret, value: str) -> None:
        """Replace the backend secret value."""
        ...

    def delete_secret(self, secret: Secret) -> datetime | None:
        """Delete the backend secret.

        Returns:
            The scheduled purge time when the backend keeps a recovery window
        """
        ...

    def get_last_changed_date(self, secret: Secret) -> datetime | None:
        """When the backend secret last changed, if known."""
        ...

    def create_access(self, secret: Secret, access: SecretAccess) -> None:
        """Grant the access subjects read permission on the secret."""
        ...

    def update_access(self, secret: Secret, access: SecretAccess) -> None:
        """Recompute and apply the grant for the current subjects."""
        ...

    def delete_access(self, access: SecretAccess) -> None:
        """Revoke the grant using only the recorded backend handles."""
        ...
