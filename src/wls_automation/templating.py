"""Jinja2 rendering of action fields and ``when`` conditions."""

from __future__ import annotations

from typing import Any

import jinja2

TRUE_STRINGS = {"true", "yes", "on", "1", "y"}
FALSE_STRINGS = {"false", "no", "off", "0", "n", ""}


def to_bool(value: Any) -> bool:
    """Interpret ``value`` the way plan authors write booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    lowered = str(value).strip().lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    raise ValueError(f"Unable to interpret boolean value '{value}'")


def _make_environment() -> jinja2.Environment:
    env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False, keep_trailing_newline=True)
    env.filters["bool"] = to_bool
    return env


class Renderer:
    def __init__(self, variables: dict[str, Any]):
        self.variables = variables
        self.env = _make_environment()

    def render(self, value: Any) -> Any:
        if isinstance(value, str):
            if "{{" not in value and "{%" not in value:
                return value
            try:
                return self.env.from_string(value).render(self.variables)
            except jinja2.UndefinedError as exc:
                raise ValueError(f"Cannot render '{value}': {exc.message}") from None
        if isinstance(value, dict):
            return {k: self.render(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.render(v) for v in value]
        return value

    def evaluate(self, expression: Any) -> bool:
        """Evaluate a ``when`` condition; non-string values are coerced directly."""
        if not isinstance(expression, str):
            return to_bool(expression)
        text = expression.strip()
        if text.startswith("{{") and text.endswith("}}"):
            text = text[2:-2].strip()
        try:
            compiled = self.env.compile_expression(text, undefined_to_none=False)
            result = compiled(**self.variables)
        except jinja2.UndefinedError as exc:
            raise ValueError(f"Cannot evaluate condition '{expression}': {exc.message}") from None
        except jinja2.TemplateSyntaxError as exc:
            raise ValueError(f"Invalid condition '{expression}': {exc.message}") from None
        if isinstance(result, jinja2.Undefined):
            raise ValueError(f"Condition '{expression}' is undefined")
        return to_bool(result)
