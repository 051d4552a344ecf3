"""Operator entry points for FlixMap (``python -m flixmap``)."""

from __future__ import annotations

from app import __version__

__all__ = ["__version__"]
