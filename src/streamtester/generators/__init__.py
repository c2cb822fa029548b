from streamtester.generators.catalog import FakerCatalog, ValueCatalog
from streamtester.generators.template import RenderResult, TemplateRenderer
from streamtester.generators.value import ValueGenerator, parse_constraints

__all__ = [
    "FakerCatalog",
    "RenderResult",
    "TemplateRenderer",
    "ValueCatalog",
    "ValueGenerator",
    "parse_constraints",
]
