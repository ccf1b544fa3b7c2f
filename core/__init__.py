"""Core utilities shared by every layer — currently the project logger.

This package is framework-agnostic. It must NEVER import from ``bot/`` or ``sdk/``.
"""

from core.logger import PollgramLogger

__all__ = [
    "PollgramLogger",
]
