# -*- coding: utf-8 -*-
from __future__ import annotations

import json
import re
from typing import Any, Dict


def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Immutable deep merge: returns a new dict, values from b win over a.
    """
    out = dict(a)
    for k, v in b.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


_bool_map = {"true": True, "false": False}


def parse_scalar(value: str) -> Any:
    """
    Parses a CLI override scalar:
    - true/false -> bool
    - int/float
    - JSON ([], {}, "str") when it looks like JSON
    - otherwise the string as is
    """
    s = value.strip()
    low = s.lower()
    if low in _bool_map:
        return _bool_map[low]
    if re.fullmatch(r"-?\d+", s):
        return int(s)
    if re.fullmatch(r"-?\d+\.\d+", s):
        return float(s)
    if (
        (s.startswith("{") and s.endswith("}"))
        or (s.startswith("[") and s.endswith("]"))
        or (s.startswith('"') and s.endswith('"'))
    ):
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            pass
    return s
