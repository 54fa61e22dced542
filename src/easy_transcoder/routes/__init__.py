"""HTTP blueprints for the transcoder service."""
from __future__ import annotations

from .tasks import api_bp

__all__ = ["api_bp"]
