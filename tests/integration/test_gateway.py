"""Integration tests for SQLTableGateway: real SQLite, no mocks."""

from datetime import date, datetime

import pytest
import pytest_asyncio
from sqlalchemy import text

from funcbase.exceptions import StorageError
from funcbase.models import FilterOperator
from funcbase.services.pipeline import (
    ColumnArithmetic,
    Condition,
    Page,
    SortOrder,
    SubstringFilter,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def seeded(gateway):
    """Three orders owned by two users."""
    for user_id, total, status in [("u1", 10.0, "new"), ("u1", 25.5, "paid"), ("u2", 7.0, "new")]:
        await gateway.insert("orders", {"user_id": user_id, "total": total, "status": status})
    return gateway


def eq(column, value):
    return Condition(column, FilterOperator.EQ, value)


# ===================================================================
# Writes
# ===================================================================


class TestWrites:
    """Tests for insert, update and delete."""

    @pytest.mark.asyncio
    async def test_insert_returns_primary_key(self, gateway):
        first = await gateway.insert("orders", {"total": 1})
        second = await gateway.insert("orders", {"total": 2})
        assert second == first + 1

    @pytest.mark.asyncio
    async def test_each_call_commits(self, gateway, test_engine):
        await gateway.insert("orders", {"total": 3, "user_id": "u9"})

        async with test_engine.connect() as conn:
            count = (await conn.execute(text("SELECT COUNT(*) FROM orders"))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_update_returns_row_count(self, seeded):
        affected = await seeded.update("orders", [eq("user_id", "u1")], {"status": "shipped"})

        assert affected == 2
        rows = await seeded.fetch("orders", [eq("status", "shipped")], ["user_id"])
        assert rows == [{"user_id": "u1"}, {"user_id": "u1"}]

    @pytest.mark.asyncio
    async def test_delete_returns_row_count(self, seeded):
        assert await seeded.delete("orders", [eq("status", "new")]) == 2
        assert len(await seeded.fetch("orders", [], [])) == 1

    @pytest.mark.asyncio
    async def test_constraint_violation_is_storage_error(self, gateway):
        with pytest.raises(StorageError, match="orders"):
            await gateway.insert("orders", {"user_id": "u1"})

    @pytest.mark.asyncio
    async def test_unknown_column(self, gateway):
        with pytest.raises(StorageError, match="nope"):
            await gateway.insert("orders", {"total": 1, "nope": 2})

    @pytest.mark.asyncio
    async def test_unknown_table(self, gateway):
        with pytest.raises(StorageError, match="does not exist"):
            await gateway.insert("missing", {"a": 1})

    @pytest.mark.asyncio
    async def test_arithmetic_update(self, gateway):
        key = await gateway.insert("products", {"name": "lamp", "stock": 5})

        affected = await gateway.update(
            "products", [eq("id", key)], {"stock": ColumnArithmetic("stock", "-", 2)}
        )

        assert affected == 1
        assert await gateway.fetch("products", [eq("id", key)], ["stock"]) == [{"stock": 3}]

    @pytest.mark.asyncio
    async def test_arithmetic_on_unknown_column(self, gateway):
        with pytest.raises(StorageError, match="nope"):
            await gateway.update("products", [], {"stock": ColumnArithmetic("nope", "+", 1)})


# ===================================================================
# Reads
# ===================================================================


class TestFetch:
    """Tests for filtered, sorted and paged reads."""

    @pytest.mark.asyncio
    async def test_selected_columns(self, seeded):
        rows = await seeded.fetch("orders", [eq("user_id", "u2")], ["user_id", "total"])
        assert rows == [{"user_id": "u2", "total": 7.0}]

    @pytest.mark.asyncio
    async def test_all_columns_when_none_selected(self, seeded):
        rows = await seeded.fetch("orders", [eq("user_id", "u2")], [])
        assert set(rows[0]) == {"id", "user_id", "total", "status"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "condition, expected",
        [
            (Condition("total", FilterOperator.GT, 8), [10.0, 25.5]),
            (Condition("total", FilterOperator.LE, 10), [7.0, 10.0]),
            (Condition("total", FilterOperator.NE, 10), [7.0, 25.5]),
            (Condition("status", FilterOperator.STARTS_WITH, "pa"), [25.5]),
            (Condition("status", FilterOperator.ENDS_WITH, "ew"), [7.0, 10.0]),
            (Condition("user_id", FilterOperator.CONTAINS, "2"), [7.0]),
        ],
    )
    async def test_operators(self, seeded, condition, expected):
        rows = await seeded.fetch("orders", [condition], ["total"], SortOrder("total"))
        assert [row["total"] for row in rows] == expected

    @pytest.mark.asyncio
    async def test_conditions_are_anded(self, seeded):
        rows = await seeded.fetch(
            "orders",
            [eq("user_id", "u1"), Condition("total", FilterOperator.LT, 20)],
            ["total"],
        )
        assert rows == [{"total": 10.0}]

    @pytest.mark.asyncio
    async def test_substring_matches_any_column(self, seeded):
        rows = await seeded.fetch("orders", [SubstringFilter("paid")], ["user_id"])
        assert rows == [{"user_id": "u1"}]

    @pytest.mark.asyncio
    async def test_substring_wildcards_are_literal(self, seeded):
        assert await seeded.fetch("orders", [SubstringFilter("%")], ["id"]) == []

    @pytest.mark.asyncio
    async def test_sort_and_page(self, seeded):
        first = await seeded.fetch(
            "orders", [], ["total"], SortOrder("total", descending=True), Page(number=1, size=2)
        )
        second = await seeded.fetch(
            "orders", [], ["total"], SortOrder("total", descending=True), Page(number=2, size=2)
        )
        assert [row["total"] for row in first] == [25.5, 10.0]
        assert [row["total"] for row in second] == [7.0]

    @pytest.mark.asyncio
    async def test_sort_on_unknown_column(self, seeded):
        with pytest.raises(StorageError):
            await seeded.fetch("orders", [], ["id"], SortOrder("nope"))

    @pytest.mark.asyncio
    async def test_null_equality(self, seeded):
        await seeded.insert("orders", {"total": 1})
        rows = await seeded.fetch("orders", [eq("user_id", None)], ["total"])
        assert rows == [{"total": 1.0}]


class TestColumnConversion:
    """JSON strings bound to boolean, date and datetime columns."""

    @pytest.mark.asyncio
    async def test_boolean_and_iso_strings_stored_as_typed_values(self, gateway):
        key = await gateway.insert(
            "products",
            {
                "name": "lamp",
                "active": False,
                "released": "2024-05-01",
                "updated_at": "2024-05-01T10:30:00",
            },
        )

        columns = ["active", "released", "updated_at"]
        rows = await gateway.fetch("products", [eq("id", key)], columns)

        assert rows == [
            {
                "active": False,
                "released": date(2024, 5, 1),
                "updated_at": datetime(2024, 5, 1, 10, 30),
            }
        ]

    @pytest.mark.asyncio
    async def test_boolean_text_converted(self, gateway):
        key = await gateway.insert("products", {"name": "lamp", "active": "false"})
        rows = await gateway.fetch("products", [eq("id", key)], ["active"])
        assert rows == [{"active": False}]

    @pytest.mark.asyncio
    async def test_date_comparison_filter(self, gateway):
        for name, released in [("old", "2020-01-01"), ("new", "2024-06-30")]:
            await gateway.insert("products", {"name": name, "released": released})

        rows = await gateway.fetch(
            "products", [Condition("released", FilterOperator.GT, "2023-01-01")], ["name"]
        )

        assert rows == [{"name": "new"}]

    @pytest.mark.asyncio
    async def test_datetime_update(self, gateway):
        key = await gateway.insert("products", {"name": "lamp"})

        await gateway.update("products", [eq("id", key)], {"updated_at": "2025-02-03 04:05:06"})

        rows = await gateway.fetch("products", [eq("id", key)], ["updated_at"])
        assert rows == [{"updated_at": datetime(2025, 2, 3, 4, 5, 6)}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "row", [{"released": "someday"}, {"updated_at": "2024-13-01T00:00:00"}]
    )
    async def test_unparsable_value(self, gateway, row):
        with pytest.raises(StorageError, match="does not fit column"):
            await gateway.insert("products", {"name": "lamp", **row})


class TestReflection:
    """Tests for table reflection."""

    @pytest.mark.asyncio
    async def test_column_types(self, gateway):
        types = await gateway.column_types("order_items")
        assert types == {
            "id": "INTEGER",
            "order_id": "INTEGER",
            "sku": "TEXT",
            "quantity": "INTEGER",
        }

    @pytest.mark.asyncio
    async def test_forget_picks_up_schema_changes(self, gateway, test_engine):
        await gateway.column_types("orders")
        async with test_engine.begin() as conn:
            await conn.execute(text("ALTER TABLE orders ADD COLUMN note TEXT"))

        assert "note" not in await gateway.column_types("orders")
        gateway.forget("orders")
        assert "note" in await gateway.column_types("orders")

    @pytest.mark.asyncio
    async def test_new_column_picked_up_without_forget(self, gateway, test_engine):
        await gateway.insert("orders", {"total": 1})
        async with test_engine.begin() as conn:
            await conn.execute(text("ALTER TABLE orders ADD COLUMN note TEXT"))

        await gateway.insert("orders", {"total": 2, "note": "gift"})
        rows = await gateway.fetch("orders", [eq("note", "gift")], ["total", "note"])

        assert rows == [{"total": 2.0, "note": "gift"}]
        assert "note" in await gateway.column_types("orders")
