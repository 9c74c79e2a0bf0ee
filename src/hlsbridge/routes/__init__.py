"""HTTP routes for the bridge service."""
from __future__ import annotations

from .status import api_bp

__all__ = ["api_bp"]
