"""SecretsProvider Port Interface.

Contract: Retrieve secret material (provider API keys) by logical name; no persistence here.
"""

from __future__ import annotations

from typing import Protocol


class SecretsProvider(Protocol):
    def get(self, secret_name: str) -> str: ...

    """
    Retrieve a secret value using its logical name.
    Raises when the secret is unavailable.
    """

    def has(self, secret_name: str) -> bool: ...
