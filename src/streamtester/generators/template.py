from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from streamtester.errors import GenerationError
from streamtester.generators.value import ValueGenerator
from streamtester.models.parameter import Parameter

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


def _inside_quotes(template: str, start: int, end: int) -> bool:
    return start > 0 and end < len(template) and template[start - 1] == '"' and template[end] == '"'


def _as_string_body(encoded: str) -> str:
    """Escaped body of a JSON string, for a placeholder the template already quotes."""
    if encoded.startswith('"'):
        return encoded[1:-1]
    return json.dumps(encoded)[1:-1]


@dataclass
class RenderResult:
    """A rendered message plus the placeholders that could not be filled."""

    message: str
    errors: list[GenerationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TemplateRenderer:
    """Substitutes ``{{name}}`` placeholders with JSON-encoded generated values.

    The template is treated as an opaque string. Each parameter is generated
    once per render and every occurrence of its placeholder receives that
    same value. Placeholders without a parameter are left untouched.

    A placeholder written between double quotes (``"{{name}}"``) is already a
    JSON string, so it receives the escaped text without another pair of quotes.
    """

    def __init__(self, generator: ValueGenerator):
        self.generator = generator

    def render(self, template: str, parameters: list[Parameter]) -> RenderResult:
        errors: list[GenerationError] = []
        encoded: dict[str, str | None] = {}

        for param in parameters:
            if param.name in encoded or param.placeholder not in template:
                continue
            try:
                encoded[param.name] = json.dumps(self.generator.generate(param), default=str)
            except GenerationError as e:
                logger.debug("Leaving %s unsubstituted: %s", param.placeholder, e)
                errors.append(e)
                encoded[param.name] = None

        # Single pass over the original template so generated text is never re-scanned
        def substitute(match: re.Match) -> str:
            value = encoded.get(match.group(1))
            if value is None:
                return match.group(0)
            if _inside_quotes(template, match.start(), match.end()):
                return _as_string_body(value)
            return value

        return RenderResult(message=_PLACEHOLDER.sub(substitute, template), errors=errors)
