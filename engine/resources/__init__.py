"""
Resources module - typed file persistence.
"""

from engine.resources.data_io import load_typed_file, save_typed_file

__all__ = [
    "load_typed_file",
    "save_typed_file",
]
