"""Validation of label names, metric names and metric prefixes."""

from __future__ import annotations

from collections.abc import Iterable

_CLIP_LENGTH = 32
_CLIP_MARKER = "…"


class NameValidationError(ValueError):
    """Raised when a label or metric name does not satisfy naming rules."""

    def __init__(
        self,
        message: str,
        *,
        position: int | None = None,
        char: str | None = None,
    ) -> None:
        super().__init__(message)
        self.position = position
        self.char = char


def _is_valid_start_char(ch: str) -> bool:
    return ch == "_" or "a" <= ch <= "z"


def _is_valid_char(ch: str) -> bool:
    return _is_valid_start_char(ch) or "0" <= ch <= "9"


def validate_name(name: str) -> None:
    """Check that `name` matches `[_a-z][_a-z0-9]*`, raising `NameValidationError` if not."""
    if not name:
        raise NameValidationError("name cannot be empty")

    for pos, ch in enumerate(name):
        if ord(ch) > 127:
            raise NameValidationError(
                f"name contains non-ASCII chars, first at position {pos}",
                position=pos,
            )
        if pos == 0 and not _is_valid_start_char(ch):
            raise NameValidationError(
                f"name starts with disallowed char '{ch}'; allowed chars are [_a-z]",
                position=pos,
                char=ch,
            )
        if not _is_valid_char(ch):
            raise NameValidationError(
                f"name contains a disallowed char '{ch}' at position {pos}; "
                "allowed chars are [_a-z0-9]",
                position=pos,
                char=ch,
            )


def _clip(name: str) -> str:
    if len(name) <= _CLIP_LENGTH:
        return name
    return name[:_CLIP_LENGTH] + _CLIP_MARKER


def _check(kind: str, name: str) -> None:
    try:
        validate_name(name)
    except NameValidationError as err:
        raise NameValidationError(
            f"{kind} `{_clip(name)}` is invalid: {err}",
            position=err.position,
            char=err.char,
        ) from None


def assert_label_name(name: str) -> None:
    """Check that a label name is valid."""
    _check("Label name", name)


def assert_label_names(names: Iterable[str]) -> None:
    """Check that every label name in `names` is valid."""
    for name in names:
        assert_label_name(name)


def assert_metric_name(name: str) -> None:
    """Check that a metric name is valid."""
    _check("Metric name", name)


def assert_metric_prefix(name: str) -> None:
    """Check that a metric prefix is valid."""
    _check("Metric prefix", name)