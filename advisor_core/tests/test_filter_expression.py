import pytest

from advisor_core.domain.exceptions import FilterExpressionError
from advisor_core.rag.filter_expression import parse

META = {"type": "Spring AI", "year": 2024, "category": "intro", "draft": False}


@pytest.mark.parametrize(
    "text,expected",
    [
        ("type == 'Spring AI'", True),
        ('type == "Spring"', False),
        ("year >= 2024", True),
        ("year > 2024", False),
        ("year < 2030 && year <= 2024", True),
        ("category IN ['intro', 'concepts']", True),
        ("category NIN ['intro']", False),
        ("category NOT IN ['advanced']", True),
        ("type == 'x' || year == 2024", True),
        ("type == 'Spring AI' AND (year >= 2025 OR category in ['intro'])", True),
        ("!(year == 2024)", False),
        ("NOT draft == true", True),
        ("author == 'bob'", False),
        ("author != 'bob'", True),
        ("author NIN ['bob']", True),
        ("author > 1", False),
    ],
)
def test_filter_expression_matches(text, expected):
    assert parse(text).matches(META) is expected


def test_type_mismatch_comparison_is_false():
    assert parse("type > 3").matches(META) is False


@pytest.mark.parametrize("text", ["", "year >=", "type == 'a' &&", "(year == 1", "year IN 2024", "year ~ 1"])
def test_invalid_filter_expressions(text):
    with pytest.raises(FilterExpressionError) as exc:
        parse(text)
    assert exc.value.code == "INVALID_FILTER"
