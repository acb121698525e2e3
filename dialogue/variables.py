"""
Variable store - typed script variables.

Scripts declare variables with ``var <name> = <literal>``. Values are a
tagged union of bool, int and str, decided from the literal syntax:

    var met_ava = false        -> bool
    var trust = 3              -> int
    var nickname = "Captain"   -> str
    var mood = grumpy          -> str (unquoted fallback)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import StrictBool, StrictInt, StrictStr

from engine.core.model import DataModel
from dialogue.errors import VariableConversionError, VariableNotFoundError

logger = logging.getLogger(__name__)

VariableValue = Union[bool, int, str]

_DEFAULTS: dict[type, VariableValue] = {bool: False, int: 0, str: ""}


class Variable(DataModel):
    """A named script variable as stored in save files."""
    name: str
    value: Union[StrictBool, StrictInt, StrictStr]


def parse_bool(text: str) -> Optional[bool]:
    """Parse ``true``/``false`` (any case, surrounding whitespace ignored)."""
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def parse_int(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def parse_value(raw: str) -> VariableValue:
    """Turn the literal on the right of a ``var`` declaration into a value."""
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]

    as_bool = parse_bool(raw)
    if as_bool is not None:
        return as_bool

    as_int = parse_int(raw)
    if as_int is not None:
        return as_int

    return raw


def format_value(value: VariableValue) -> str:
    """Display form of a value, used for ``{name}`` interpolation."""
    return str(value)


def convert(value: VariableValue, as_type: type) -> VariableValue:
    """
    Convert a stored value to bool, int or str.

    Raises:
        VariableConversionError: If the value has no representation in as_type.
    """
    if as_type is str:
        return format_value(value)

    if as_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        parsed = parse_bool(value)
        if parsed is None:
            raise VariableConversionError(f"Cannot convert {value!r} to bool")
        return parsed

    if as_type is int:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        parsed = parse_int(value)
        if parsed is None:
            raise VariableConversionError(f"Cannot convert {value!r} to int")
        return parsed

    raise VariableConversionError(f"Unsupported variable type: {as_type!r}")


class VariableStore:
    """
    Session-wide mapping of variable name -> value.

    Owned by the DialogueContext. Insertion order is preserved so saved
    variable lists diff cleanly between saves.
    """

    def __init__(self, values: Optional[Mapping[str, VariableValue]] = None):
        self._values: dict[str, VariableValue] = {}
        if values:
            self.load_all(values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def set(self, name: str, value: VariableValue) -> None:
        if not isinstance(value, (bool, int, str)):
            raise VariableConversionError(
                f"Variable '{name}' must be bool, int or str, got {type(value).__name__}"
            )
        self._values[name] = value

    def has(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str, as_type: Optional[type] = None) -> VariableValue:
        """
        Get a variable, optionally converted.

        Raises:
            VariableNotFoundError: If the variable was never declared.
            VariableConversionError: If the value cannot be converted.
        """
        if name not in self._values:
            raise VariableNotFoundError(name)

        value = self._values[name]
        if as_type is None:
            return value
        return convert(value, as_type)

    def try_get(self, name: str, as_type: Optional[type] = None) -> tuple[Any, bool]:
        """
        Get a variable without raising.

        Returns:
            (value, True) on success, otherwise (default for as_type, False).
        """
        default = _DEFAULTS.get(as_type) if as_type is not None else None

        if name not in self._values:
            return default, False

        try:
            return self.get(name, as_type), True
        except VariableConversionError as e:
            logger.warning("Variable '%s' exists but cannot be converted: %s", name, e)
            return default, False

    def load_all(self, values: Mapping[str, VariableValue] | Iterable[Variable]) -> None:
        """Replace every variable with the given mapping or saved list."""
        if isinstance(values, Mapping):
            items = list(values.items())
        else:
            items = [(v.name, v.value) for v in values]

        self._values = {}
        for name, value in items:
            self.set(name, value)

    def clear(self) -> None:
        self._values.clear()

    def to_variables(self) -> list[Variable]:
        """Serializable (name, value) list in insertion order."""
        return [Variable(name=name, value=value) for name, value in self._values.items()]

    def as_dict(self) -> dict[str, VariableValue]:
        return dict(self._values)
