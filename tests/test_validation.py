import pytest

from vise.validation import (
    NameValidationError,
    assert_label_name,
    assert_label_names,
    assert_metric_name,
    assert_metric_prefix,
    validate_name,
)


@pytest.mark.parametrize("name", ["test", "_private", "snake_case", "l33t_c0d3"])
def test_valid_names(name):
    assert validate_name(name) is None


@pytest.mark.parametrize("name", ["", "нет", "t!st", "1est"])
def test_invalid_names(name):
    with pytest.raises(NameValidationError):
        validate_name(name)


def test_empty_name_message():
    with pytest.raises(NameValidationError, match="name cannot be empty"):
        validate_name("")


def test_non_ascii_position():
    with pytest.raises(NameValidationError) as info:
        validate_name("нет")
    assert info.value.position == 0
    assert "non-ASCII chars, first at position 0" in str(info.value)


def test_disallowed_start_char():
    with pytest.raises(NameValidationError) as info:
        validate_name("1est")
    assert str(info.value) == (
        "name starts with disallowed char '1'; allowed chars are [_a-z]"
    )
    assert info.value.char == "1"


def test_disallowed_inner_char():
    with pytest.raises(NameValidationError) as info:
        validate_name("t!st")
    assert str(info.value) == (
        "name contains a disallowed char '!' at position 1; allowed chars are [_a-z0-9]"
    )
    assert info.value.position == 1


def test_uppercase_label_name_rejected():
    with pytest.raises(NameValidationError, match="Label name `methoD` is invalid"):
        assert_label_name("methoD")


def test_bogus_prefix_rejected():
    with pytest.raises(NameValidationError, match="Metric prefix `what\\?` is invalid"):
        assert_metric_prefix("what?")


def test_non_ascii_metric_name_rejected():
    with pytest.raises(NameValidationError, match="Metric name `счетчик` is invalid"):
        assert_metric_name("счетчик")


def test_long_name_is_clipped_in_message():
    name = "a" * 40 + "!"
    with pytest.raises(NameValidationError) as info:
        assert_metric_name(name)
    message = str(info.value)
    assert message.startswith("Metric name `" + "a" * 32 + "…` is invalid")
    assert info.value.position == 40


def test_label_names_stops_at_first_invalid():
    with pytest.raises(NameValidationError, match="`код`"):
        assert_label_names(["test", "код", "Other"])


def test_label_names_all_valid():
    assert assert_label_names(["db", "cf", "code"]) is None