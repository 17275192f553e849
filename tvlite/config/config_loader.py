"""
Purpose:
    - Loads an optional TOML config file
    - Validates it into AppConfig (unknown sections are rejected)

Environment (HOST, PORT) overrides the [server] section, matching how the
proxy server is usually launched. API keys are not read here; see
adapters/env_provider.py.
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from tvlite.config.configs import AppConfig

_SECTIONS = ("cache", "providers", "server", "chart")


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".", env: Optional[Mapping[str, str]] = None) -> None:
        self._base_dir = base_dir
        self._env = os.environ if env is None else env

    def load(self, file_name: str) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = Path(self._base_dir) / file_name

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            return tomllib.load(f)

    def load_app_config(self, file_name: Optional[str] = None) -> AppConfig:
        data: dict[str, Any] = self.load(file_name) if file_name else {}

        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        server = dict(data.get("server", {}))
        if self._env.get("HOST"):
            server["host"] = self._env["HOST"]
        if self._env.get("PORT"):
            server["port"] = int(self._env["PORT"])

        cache = dict(data.get("cache", {}))
        cache_dir = cache.get("cache_dir")
        if cache_dir is not None and not Path(cache_dir).is_absolute():
            cache["cache_dir"] = Path(self._base_dir) / cache_dir

        return AppConfig(
            cache=cache,
            providers=data.get("providers", {}),
            server=server,
            chart=data.get("chart", {}),
        )
