from __future__ import annotations

from ..errors import ValidationError


def parse_duration(text: str | int | float | None) -> float | None:
    """
    Converts '400ms', '2s', '1m', '1h' to seconds (float).
    Numbers are returned as float, None stays None.
    """
    if text is None:
        return None
    if isinstance(text, bool):
        raise ValidationError(f"not a duration: {text!r}")
    if isinstance(text, (int, float)):
        return float(text)
    s = str(text).strip().lower()
    try:
        if s.endswith("ms"):
            return float(s[:-2]) / 1000.0
        if s.endswith("s"):
            return float(s[:-1])
        if s.endswith("m"):
            return float(s[:-1]) * 60.0
        if s.endswith("h"):
            return float(s[:-1]) * 3600.0
        # bare number means seconds
        return float(s)
    except ValueError as exc:
        raise ValidationError(f"not a duration: {text!r}") from exc
