# -*- coding: utf-8 -*-
from __future__ import annotations

from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError
from jinja2.nativetypes import NativeEnvironment

from .errors import ValidationError

_text_env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
_native_env = NativeEnvironment(undefined=StrictUndefined)


def is_template(text: str) -> bool:
    return "{{" in text or "{%" in text


def render_value(value: Any, variables: Mapping[str, Any], *, native: bool = False) -> Any:
    """
    Renders Jinja2 placeholders in every string found in value (dicts and
    lists are walked). With native=True a lone placeholder keeps its type,
    so "{{ options.height }}" becomes 120 and not "120".
    """
    env = _native_env if native else _text_env

    def _walk(x: Any) -> Any:
        if isinstance(x, str) and is_template(x):
            try:
                return env.from_string(x).render(**variables)
            except TemplateError as exc:
                raise ValidationError(f"cannot render {x!r}: {exc}") from exc
        if isinstance(x, dict):
            return {k: _walk(v) for k, v in x.items()}
        if isinstance(x, list):
            return [_walk(i) for i in x]
        if isinstance(x, tuple):
            return tuple(_walk(i) for i in x)
        return x

    return _walk(value)
