"""
Graphics module - event illustration (CG) display.

Exports:
- CGLayer: Loads named CG images and tracks the one on screen
"""

from engine.graphics.cg import CGLayer

__all__ = [
    "CGLayer",
]
