"""Dotted-path access to Faker providers."""

from __future__ import annotations

import random
import re
from collections.abc import Callable
from typing import Any, Protocol

from faker import Faker

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ValueCatalog(Protocol):
    """Source of realistic values addressed by ``namespace.method`` paths."""

    @property
    def random(self) -> random.Random: ...

    def resolve(self, path: str) -> Callable[[], Any]: ...

    def list_types(self) -> list[str]: ...


def _to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class FakerCatalog:
    """Resolves ``namespace.method`` against Faker providers.

    The namespace is the provider module name (``person``, ``address``,
    ``internet``, ...), the method any public callable on that provider.
    camelCase method names are accepted, so ``person.firstName`` and
    ``person.first_name`` resolve to the same generator.
    """

    def __init__(self, locale: str | None = None, seed: int | None = None):
        self._faker = Faker(locale) if locale else Faker()
        if seed is not None:
            self._faker.seed_instance(seed)
        self._providers = {
            provider.__provider__.rsplit(".", 1)[-1]: provider
            for provider in reversed(self._faker.get_providers())
        }

    @property
    def faker(self) -> Faker:
        return self._faker

    @property
    def random(self) -> random.Random:
        return self._faker.random

    def resolve(self, path: str) -> Callable[[], Any]:
        namespace, _, method = path.partition(".")
        if not namespace or not method:
            raise LookupError(f"Expected 'namespace.method', got '{path}'")

        provider = self._providers.get(_to_snake(namespace))
        if provider is None:
            raise LookupError(f"Unknown namespace: '{namespace}'")

        target: Any = provider
        for part in method.split("."):
            attr = _to_snake(part)
            if attr.startswith("_") or not hasattr(target, attr):
                raise LookupError(f"Unknown method '{part}' in '{path}'")
            target = getattr(target, attr)

        if not callable(target):
            raise LookupError(f"'{path}' is not callable")
        return target

    def list_types(self) -> list[str]:
        types = set()
        for namespace, provider in self._providers.items():
            for name in dir(provider):
                if name.startswith("_"):
                    continue
                if callable(getattr(provider, name, None)):
                    types.add(f"{namespace}.{name}")
        return sorted(types)
