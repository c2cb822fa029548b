"""Single-value generation for template parameters."""

from __future__ import annotations

import math
import string
from datetime import datetime, timezone
from typing import Any

from streamtester.errors import EmptyValueSetError, GenerationError
from streamtester.generators.catalog import ValueCatalog
from streamtester.models.parameter import Parameter

# Integer bounds used when a number parameter does not constrain its range
MIN_SAFE_INTEGER = -(2**53 - 1)
MAX_SAFE_INTEGER = 2**53 - 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ALPHANUMERIC = string.ascii_letters + string.digits


def parse_constraints(constraints: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Split ``key:value`` constraints, last one wins. Entries without a colon are dropped."""
    parsed: dict[str, str] = {}
    for constraint in constraints:
        key, sep, value = str(constraint).partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        parsed[key] = value.strip()
    return parsed


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ValueGenerator:
    """Produces one value for a parameter.

    Manual parameters pick uniformly from their value list. Randomized
    parameters dispatch on their type: the built-in types are generated
    here, dotted ``namespace.method`` types are delegated to the catalog,
    and any other type falls back to a word.
    """

    def __init__(self, catalog: ValueCatalog):
        self.catalog = catalog

    @property
    def _rng(self):
        return self.catalog.random

    def generate(self, param: Parameter) -> Any:
        if not param.is_randomized:
            if not param.manual_values:
                raise EmptyValueSetError(
                    f"Parameter '{param.name}' has no manual values", placeholder=param.name
                )
            return self._rng.choice(param.manual_values)

        try:
            return self.generate_typed(param.type, param.constraints)
        except GenerationError as e:
            e.placeholder = e.placeholder or param.name
            raise
        except Exception as e:
            raise GenerationError(
                f"Cannot generate '{param.type}': {e}", placeholder=param.name
            ) from e

    def generate_typed(self, type_name: str, constraints: tuple[str, ...] | list[str] = ()) -> Any:
        options = parse_constraints(constraints)

        match type_name:
            case "uuid":
                return self.catalog.resolve("misc.uuid4")()
            case "string":
                return self._string(options)
            case "number":
                return self._number(options)
            case "date":
                return self._date(options)
            case "boolean":
                return self._rng.random() < 0.5
            case "array":
                return self._array(options)
            case _ if "." in type_name:
                return self._from_catalog(type_name)
            case _:
                return self._word()

    def _word(self) -> str:
        return self.catalog.resolve("lorem.word")()

    def _string(self, options: dict[str, str]) -> str:
        length = _parse_int(options.get("length"))
        if length is not None and length >= 0:
            return "".join(self._rng.choices(_ALPHANUMERIC, k=length))

        pattern = options.get("pattern")
        if pattern:
            return self.catalog.resolve("misc.bothify")(pattern)

        return self._word()

    def _number(self, options: dict[str, str]) -> int | float:
        low = _parse_float(options.get("min"))
        high = _parse_float(options.get("max"))
        low = MIN_SAFE_INTEGER if low is None else low
        high = MAX_SAFE_INTEGER if high is None else high
        precision = _parse_int(options.get("precision"))
        precision = precision if precision is not None and precision > 0 else 0

        if low > high:
            raise GenerationError(f"min ({low:g}) is greater than max ({high:g})")

        if precision:
            value = round(self._rng.uniform(low, high), precision)
            return min(max(value, low), high)

        int_low = int(-(-low // 1))  # ceil
        int_high = int(high // 1)
        if int_low > int_high:
            raise GenerationError(f"No integer between {low:g} and {high:g}")
        return self._rng.randint(int_low, int_high)

    def _date(self, options: dict[str, str]) -> str:
        start = _parse_date(options.get("from")) or EPOCH
        end = _parse_date(options.get("to")) or datetime.now(timezone.utc)

        if start > end:
            raise GenerationError(
                f"from ({_iso_timestamp(start)}) is after to ({_iso_timestamp(end)})"
            )

        moment = self._rng.uniform(start.timestamp(), end.timestamp())
        return _iso_timestamp(datetime.fromtimestamp(moment, tz=timezone.utc))

    def _array(self, options: dict[str, str]) -> list[Any]:
        length = _parse_int(options.get("length"))
        if length is None or length < 0:
            length = self._rng.randint(1, 5)
        item_type = options.get("itemType") or "string"
        return [self.generate_typed(item_type) for _ in range(length)]

    def _from_catalog(self, path: str) -> Any:
        try:
            factory = self.catalog.resolve(path)
            return factory()
        except Exception as e:
            raise GenerationError(f"Cannot generate '{path}': {e}") from e
