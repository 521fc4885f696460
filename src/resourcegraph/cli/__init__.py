"""
resourcegraph CLI - Command line tools for resource configs.
"""

from __future__ import annotations

from .main import app, main

__all__ = ["main", "app"]
