"""Toolkit displays for Cardano-NodeKit."""

from .status_display import StatusDisplay

__all__ = [
    'StatusDisplay',
]
