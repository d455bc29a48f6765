"""Run outcomes and their serialised contracts."""

from . import contracts, models

__all__ = ["contracts", "models"]
