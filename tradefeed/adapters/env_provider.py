from __future__ import annotations

import logging
import os

from tradefeed.ports.secrets_provider import SecretsProvider

_LOGGER = logging.getLogger(__name__)


class MissingSecretError(ValueError):
    """
    Raised when a logical secret cannot be resolved from the environment.
    """

    def __init__(self, secret_name: str, env_var: str | None = None) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name
        self.env_var = env_var

    def __str__(self) -> str:
        if self.env_var:
            return f"Secret '{self.secret_name}' is unavailable (set {self.env_var})"
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "TRADEFEED_",
        allowed: dict[str, str] | None = None,
    ) -> None:
        """
        Map logical identity provider credentials onto prefixed environment variables.
        """

        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        # logical secret name -> environment variable suffix
        base_allowed: dict[str, str] = {
            "client_id": "SSO_CLIENT_ID",
            "client_secret": "SSO_CLIENT_SECRET",
            "username": "TBWA_USERNAME",
            "password": "TBWA_PASSWORD",
        }
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed

    def env_var(self, secret_name: str) -> str:
        return f"{self._prefix}{self._allowed[secret_name]}"

    def get(self, secret_name: str) -> str:
        """Resolve a logical secret name to a concrete environment variable value."""

        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)

        env_var = self.env_var(secret_name)
        value = os.environ.get(env_var)
        if not value:
            raise MissingSecretError(secret_name, env_var)

        _LOGGER.debug(
            "secret_resolved",
            extra={
                "event": "secret_resolved",
                "secret_name": secret_name,
                "source": "env",
            },
        )
        return value
