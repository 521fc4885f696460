"""
Configuration loading for resourcegraph deployments.

Two sources:
- Resource definitions, from a YAML file (see ``core.compiler``)
- Runtime settings, from RESOURCEGRAPH_* environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..core.errors import GraphConfigError


@dataclass
class Settings:
    """Runtime settings for the gateway."""
    default_page_size: int = 30
    max_page_size: Optional[int] = 100
    max_depth: int = 8
    timeout: float = 30.0
    service_url: Optional[str] = None
    cors_origins: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """
        Read settings from the environment.

        RESOURCEGRAPH_DEFAULT_PAGE_SIZE, RESOURCEGRAPH_MAX_PAGE_SIZE (0 = no limit),
        RESOURCEGRAPH_MAX_DEPTH, RESOURCEGRAPH_TIMEOUT, RESOURCEGRAPH_SERVICE_URL,
        RESOURCEGRAPH_CORS_ORIGINS (comma-separated)
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, convert, default):
            raw = env.get(f"RESOURCEGRAPH_{name}")
            if raw is None or raw == "":
                return default
            try:
                return convert(raw)
            except ValueError as e:
                raise GraphConfigError(f"RESOURCEGRAPH_{name}: invalid value {raw!r}") from e

        max_page_size = read("MAX_PAGE_SIZE", int, defaults.max_page_size)
        return cls(
            default_page_size=read("DEFAULT_PAGE_SIZE", int, defaults.default_page_size),
            max_page_size=max_page_size or None,
            max_depth=read("MAX_DEPTH", int, defaults.max_depth),
            timeout=read("TIMEOUT", float, defaults.timeout),
            service_url=read("SERVICE_URL", str, defaults.service_url),
            cors_origins=read(
                "CORS_ORIGINS",
                lambda raw: [o.strip() for o in raw.split(",") if o.strip()],
                [],
            ),
        )


def load_resources(path: Path | str) -> dict[str, Any]:
    """
    Load resource definitions from a YAML file.

    Raises:
        GraphConfigError: If the file is missing or not a YAML mapping
    """
    path = Path(path)
    if not path.exists():
        raise GraphConfigError(f"Config file {path} not found")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise GraphConfigError(f"Config file {path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise GraphConfigError(f"Config file {path} must contain a mapping")
    return data
