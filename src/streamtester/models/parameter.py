"""Placeholder parameters bound to names used inside message templates."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

BUILTIN_TYPES = ("uuid", "string", "number", "date", "boolean", "array")


@dataclass(frozen=True)
class Parameter:
    """A named generation rule for the ``{{name}}`` placeholder."""

    name: str
    is_randomized: bool = False
    type: str = "string"
    constraints: tuple[str, ...] = ()
    manual_values: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError("Parameter name must not be empty")
        # Accept lists from callers, keep the stored form immutable
        object.__setattr__(self, "constraints", tuple(self.constraints))
        object.__setattr__(self, "manual_values", tuple(self.manual_values))

    @property
    def placeholder(self) -> str:
        return "{{" + self.name + "}}"

    def with_constraint(self, constraint: str) -> Parameter:
        return replace(self, constraints=(*self.constraints, constraint))

    def updated(self, **changes) -> Parameter:
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict) -> Parameter:
        return cls(
            name=data["name"],
            is_randomized=bool(data.get("is_randomized", data.get("randomized", False))),
            type=data.get("type") or "string",
            constraints=tuple(str(c) for c in data.get("constraints", []) or []),
            manual_values=tuple(
                str(v) for v in data.get("manual_values", data.get("values", [])) or []
            ),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "is_randomized": self.is_randomized,
            "type": self.type,
            "constraints": list(self.constraints),
            "manual_values": list(self.manual_values),
        }


@dataclass
class ParameterSet:
    """Ordered, name-unique parameters attached to one session."""

    _items: dict[str, Parameter] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)

    def get(self, name: str) -> Parameter | None:
        return self._items.get(name)

    def put(self, parameter: Parameter) -> None:
        self._items[parameter.name] = parameter

    def rename(self, old_name: str, parameter: Parameter) -> None:
        # Rebuild to keep the original position of the renamed entry
        self._items = {
            (parameter.name if name == old_name else name): (
                parameter if name == old_name else existing
            )
            for name, existing in self._items.items()
        }

    def remove(self, name: str) -> bool:
        return self._items.pop(name, None) is not None

    def replace_all(self, parameters: list[Parameter]) -> None:
        self._items = {p.name: p for p in parameters}

    def snapshot(self) -> list[Parameter]:
        return list(self._items.values())
