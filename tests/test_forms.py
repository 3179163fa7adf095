from common.forms import get_bool, get_choice, get_float
from common.validation import ValidationError


def test_get_float_with_defaults_and_bounds():
    assert get_float({}, "value", 1.5) == 1.5
    assert get_float({"value": "2.25"}, "value", 1.5) == 2.25
    assert get_float({"value": "  "}, "value", None) is None

    try:
        get_float({"value": "bad"}, "value", 1.5)
    except ValidationError as exc:
        assert "Invalid value" in str(exc)
    else:  # pragma: no cover - defensive guard
        raise AssertionError("Expected ValidationError for non-numeric input")

    try:
        get_float({"value": "0.1"}, "value", 1.5, minimum=0.5)
    except ValidationError as exc:
        assert "must be ≥" in str(exc)
    else:  # pragma: no cover - defensive guard
        raise AssertionError("Expected ValidationError for values below minimum")

    try:
        get_float({"value": "9"}, "value", 1.5, maximum=5, field_name="Width")
    except ValidationError as exc:
        assert str(exc).startswith("Width must be ≤")
    else:  # pragma: no cover
        raise AssertionError("Expected maximum guard")


def test_get_choice_normalises_and_validates():
    choices = ("low", "high")
    assert get_choice({}, "quality", "low", choices) == "low"
    assert get_choice({"quality": " HIGH "}, "quality", "low", choices) == "high"
    assert get_choice({"quality": "x4"}, "quality", "low", choices, aliases={"x4": "high"}) == "high"

    try:
        get_choice({"quality": "ultra"}, "quality", "low", choices, field_name="Quality")
    except ValidationError as exc:
        assert str(exc) == "Quality must be one of: low, high"
    else:  # pragma: no cover
        raise AssertionError("Expected ValidationError for unknown choice")


def test_get_bool_handles_various_types():
    assert get_bool({}, "flag", default=True) is True
    assert get_bool({"flag": "on"}, "flag", default=False) is True
    assert get_bool({"flag": "OFF"}, "flag", default=True) is False
    assert get_bool({"flag": 0}, "flag", default=True) is False
    assert get_bool({"flag": True}, "flag") is True
