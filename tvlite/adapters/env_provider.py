from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from tvlite.ports.secrets_provider import SecretsProvider

_LOGGER = logging.getLogger(__name__)

# logical secret name -> environment variable suffix
PROVIDER_SECRETS: dict[str, str] = {
    "polygon_api_key": "POLYGON_API_KEY",
    "twelvedata_api_key": "TWELVEDATA_API_KEY",
}


class MissingSecretError(ValueError):
    """
    Raised when a logical secret cannot be resolved from the environment.
    """

    def __init__(self, secret_name: str, env_var: Optional[str] = None) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name
        self.env_var = env_var

    def __str__(self) -> str:
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "",
        allowed: dict[str, str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """
        Configure deterministic secret lookup rules for environment-backed secrets.
        An empty prefix reads the plain variable names (POLYGON_API_KEY, ...).
        """
        self._prefix = prefix
        base_allowed = dict(PROVIDER_SECRETS)
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed
        self._env = os.environ if env is None else env

    def env_var(self, secret_name: str) -> str:
        """Concrete environment variable backing a logical secret name."""
        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)
        return f"{self._prefix}{self._allowed[secret_name]}"

    def get(self, secret_name: str) -> str:
        """Resolve a logical secret name to a concrete environment variable value."""
        env_var = self.env_var(secret_name)
        value = self._env.get(env_var, "")
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

    def has(self, secret_name: str) -> bool:
        try:
            self.get(secret_name)
        except MissingSecretError:
            return False
        return True
