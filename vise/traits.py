"""Encoding of gauge values, histogram values and metric labels."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any, ClassVar

from vise.validation import assert_label_name, assert_label_names

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

LabelPairs = list[tuple[str, str]]


def encode_gauge_value(value: Any) -> int | float:
    """Encode a gauge value for export.

    Integers within the signed 64-bit range stay integers; larger ones become floats.
    Durations are exported in seconds.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a supported gauge value")
    if isinstance(value, int):
        if _I64_MIN <= value <= _I64_MAX:
            return value
        return float(value)
    if isinstance(value, float):
        return value
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"unsupported gauge value type: {type(value).__name__}")


def encode_histogram_value(value: Any) -> float:
    """Encode a histogram observation as a float; durations are exported in seconds."""
    if isinstance(value, bool):
        raise TypeError("bool is not a supported histogram value")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"unsupported histogram value type: {type(value).__name__}")


def encode_label_value(value: Any) -> str:
    """Encode a single label value as a string.

    Enum members are encoded via their values; other objects via `str()`.
    """
    if isinstance(value, enum.Enum):
        return encode_label_value(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _field_label_name(field_name: str) -> str:
    # Allows label names clashing with Python keywords, e.g. `class_` -> `class`.
    if len(field_name) > 1 and field_name.endswith("_"):
        return field_name[:-1]
    return field_name


class LabelSet:
    """Base for types describing a set of metric labels.

    A subclass declared with a `label` keyword (``class Method(LabelSet, Enum, label="method")``)
    is treated as a single label whose value is the encoded instance itself.
    Otherwise the subclass must be a dataclass; each field becomes a label. Fields set to `None`
    are skipped, as are fields whose `metadata["skip"]` predicate returns true for the value.
    """

    _label_name: ClassVar[str | None] = None

    def __init_subclass__(cls, *, label: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if label is not None:
            assert_label_name(label)
            cls._label_name = label

    def encode_labels(self) -> LabelPairs:
        """Return the labels of this set as `(name, value)` pairs."""
        label_name = type(self)._label_name
        if label_name is not None:
            return [(label_name, encode_label_value(self))]

        if not dataclasses.is_dataclass(self):
            raise TypeError(
                f"{type(self).__name__} must be a dataclass or declare a single `label`"
            )

        pairs: LabelPairs = []
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            skip = field.metadata.get("skip")
            if skip is not None and skip(value):
                continue
            name = _field_label_name(field.name)
            assert_label_name(name)
            pairs.append((name, encode_label_value(value)))
        return pairs


def encode_label_set(labels: Any) -> LabelPairs:
    """Encode a label set given as a `LabelSet`, a mapping or a sequence of pairs."""
    if labels is None or labels == ():
        return []
    if isinstance(labels, LabelSet):
        return labels.encode_labels()
    if isinstance(labels, Mapping):
        items = labels.items()
    elif isinstance(labels, Sequence) and not isinstance(labels, (str, bytes)):
        items = labels
    else:
        raise TypeError(f"unsupported label set type: {type(labels).__name__}")

    pairs: LabelPairs = []
    for name, value in items:
        assert_label_name(name)
        pairs.append((name, encode_label_value(value)))
    return pairs


def map_labels(label_names: Sequence[str] | None, labels: Any) -> LabelPairs:
    """Map stored family labels to `(name, value)` pairs for export.

    With no label names, `labels` is encoded as a label set. With a single name, `labels`
    is the value itself; with several names, it must be a tuple of matching length.
    """
    if label_names is None:
        return encode_label_set(labels)

    names = tuple(label_names)
    if not names:
        raise ValueError("label names cannot be empty")
    assert_label_names(names)

    if len(names) == 1:
        values: tuple[Any, ...] = (labels,)
    else:
        if not isinstance(labels, tuple) or len(labels) != len(names):
            raise ValueError(
                f"expected a tuple of {len(names)} label values, got {labels!r}"
            )
        values = labels
    return [(name, encode_label_value(value)) for name, value in zip(names, values)]