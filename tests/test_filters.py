"""Tests for the filter expression grammar and sort clauses."""

import pytest

from funcbase.exceptions import AuthRequiredError, FilterSyntaxError
from funcbase.models import FilterOperator
from funcbase.services.pipeline.filters import (
    ColumnArithmetic,
    Condition,
    Page,
    SortOrder,
    SubstringFilter,
    describe,
    parse_arithmetic,
    parse_filter_expression,
    parse_sort,
)


class TestParseFilterExpression:
    """Tests for parse_filter_expression."""

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_means_no_filter(self, text):
        assert parse_filter_expression(text) == []

    def test_comparisons_joined_by_and(self):
        filters = parse_filter_expression('name = "Bob" AND age >= 3')
        assert filters == [
            Condition("name", FilterOperator.EQ, "Bob"),
            Condition("age", FilterOperator.GE, 3),
        ]

    def test_lowercase_and(self):
        assert len(parse_filter_expression("a = 1 and b = 2")) == 2

    @pytest.mark.parametrize(
        "text, operator",
        [
            ('title startsWith "The"', FilterOperator.STARTS_WITH),
            ('title endsWith "end"', FilterOperator.ENDS_WITH),
            ('title contains "mid"', FilterOperator.CONTAINS),
            ("n != 1", FilterOperator.NE),
            ("n <= 1", FilterOperator.LE),
            ("n < 1", FilterOperator.LT),
            ("n > 1", FilterOperator.GT),
        ],
    )
    def test_operators(self, text, operator):
        [condition] = parse_filter_expression(text)
        assert condition.operator == operator

    def test_unquoted_values_become_numbers(self):
        [condition] = parse_filter_expression("price < 9.5")
        assert condition.value == 9.5

    def test_quoted_numbers_stay_strings(self):
        [condition] = parse_filter_expression('code = "007"')
        assert condition.value == "007"

    def test_escaped_quote(self):
        [condition] = parse_filter_expression(r'name = "say \"hi\""')
        assert condition.value == 'say "hi"'

    def test_single_quotes(self):
        [condition] = parse_filter_expression("name = 'a b'")
        assert condition.value == "a b"

    def test_bare_text_is_substring_search(self):
        assert parse_filter_expression("hello world") == [SubstringFilter("hello world")]

    def test_user_id_substituted_in_quoted_literal(self):
        [condition] = parse_filter_expression('owner = "$user.id"', user_id="7")
        assert condition.value == "7"

    def test_user_id_substituted_unquoted(self):
        [condition] = parse_filter_expression("owner = $user.id", user_id="u-1")
        assert condition.value == "u-1"

    def test_user_id_substituted_in_substring(self):
        assert parse_filter_expression("by $user.id", user_id="7") == [SubstringFilter("by 7")]

    def test_user_id_without_caller(self):
        with pytest.raises(AuthRequiredError):
            parse_filter_expression('owner = "$user.id"')

    @pytest.mark.parametrize("text", ["a = 1 OR b = 2", "a = 1 AND", "a = 1 AND ???"])
    def test_syntax_errors(self, text):
        with pytest.raises(FilterSyntaxError):
            parse_filter_expression(text)


class TestParseSort:
    """Tests for parse_sort."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("age", SortOrder("age", descending=False)),
            ("age desc", SortOrder("age", descending=True)),
            ("age ASC", SortOrder("age", descending=False)),
            ("-age", SortOrder("age", descending=True)),
        ],
    )
    def test_forms(self, text, expected):
        assert parse_sort(text) == expected

    def test_empty(self):
        assert parse_sort(None) is None
        assert parse_sort("") is None

    @pytest.mark.parametrize("text", ["age up", "a b c", "1col", "-"])
    def test_invalid(self, text):
        with pytest.raises(FilterSyntaxError):
            parse_sort(text)


class TestParseArithmetic:
    """Tests for parse_arithmetic."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("$stock - 1", ColumnArithmetic("stock", "-", 1)),
            ("$stock+10", ColumnArithmetic("stock", "+", 10)),
            (" $price * 1.5 ", ColumnArithmetic("price", "*", 1.5)),
            ("$total / 2", ColumnArithmetic("total", "/", 2)),
        ],
    )
    def test_forms(self, text, expected):
        assert parse_arithmetic(text) == expected

    @pytest.mark.parametrize(
        "value", ["stock - 1", "$stock", "$stock - other", "$stock % 2", "$user.id", 5, None]
    )
    def test_not_arithmetic(self, value):
        assert parse_arithmetic(value) is None


def test_page_offset():
    assert Page(number=3, size=20).offset == 40


def test_describe():
    filters = [Condition("a", FilterOperator.EQ, 1), SubstringFilter("x")]
    assert describe(filters) == "a = 1 AND 'x'"
    assert describe([]) == "<all rows>"
