from __future__ import annotations

import pytest

from expense_app.domain.approval.entities import ApprovalStatus
from expense_app.infrastructure.gateway import Order, any_of, eq, ilike, in_, is_, is_not


def test_simple_filters_render_operator_and_literal() -> None:
    assert eq("status", ApprovalStatus.PENDING).render() == ("status", "eq.pending")
    assert eq("is_active", True).render() == ("is_active", "eq.true")
    assert is_("deleted_at", None).render() == ("deleted_at", "is.null")
    assert is_not("duplicate_status", None).render() == ("duplicate_status", "not.is.null")


def test_in_filter_quotes_each_value() -> None:
    assert in_("id", ["a", 'b"c']).render() == ("id", 'in.("a","b\\"c")')


def test_in_filter_rejects_empty_set() -> None:
    with pytest.raises(ValueError):
        in_("id", [])


def test_any_of_renders_a_disjunction() -> None:
    f = any_of(ilike("name", "*trip*"), ilike("description", "*trip*"))
    assert f.render() == ("or", "(name.ilike.*trip*,description.ilike.*trip*)")


def test_order_renders_direction() -> None:
    assert Order("submitted_at", ascending=False).render() == "submitted_at.desc"
    assert Order("display_order").render() == "display_order.asc"
