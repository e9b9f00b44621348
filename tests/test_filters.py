"""
Query-string normalisation (``convert_params``) and where-clause
compilation, exercised without a database.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from app.config import settings
from app.content_types import content_type_for
from app.exceptions import InvalidParameterError, UnknownAttributeError
from app.filters import (
    SortSpec,
    WhereClause,
    apply_where,
    apply_window,
    convert_params,
    where_criteria,
)
from app.models import Customer, Seller

SELLER = content_type_for(Seller)
CUSTOMER = content_type_for(Customer)


def _sql(clause) -> str:
    return str(clause)


# ---------------------------------------------------------------------------
# convert_params
# ---------------------------------------------------------------------------

def test_defaults():
    filters = convert_params(SELLER, {})
    assert filters.where == {}
    assert filters.sort is None
    assert filters.start == 0
    assert filters.limit == settings.DEFAULT_LIMIT


def test_equality_is_default_operator():
    filters = convert_params(SELLER, {"name": "Acme"})
    assert filters.where == {"name": WhereClause("=", "Acme")}


@pytest.mark.parametrize(
    "key, symbol",
    [
        ("rating_ne", "!="),
        ("rating_lt", "<"),
        ("rating_lte", "<="),
        ("rating_gt", ">"),
        ("rating_gte", ">="),
    ],
)
def test_comparison_suffixes(key, symbol):
    filters = convert_params(SELLER, {key: "4"})
    assert filters.where == {"rating": WhereClause(symbol, 4.0)}


def test_contains_suffixes_wrap_value():
    assert convert_params(SELLER, {"name_contains": "cm"}).where["name"] == WhereClause("ilike", "%cm%")
    assert convert_params(SELLER, {"name_containss": "Cm"}).where["name"] == WhereClause("like", "%Cm%")


def test_in_suffix_always_yields_a_list():
    assert convert_params(SELLER, {"id_in": "3"}).where["id"] == WhereClause("IN", [3])
    assert convert_params(SELLER, {"id_in": ["1", "2"]}).where["id"] == WhereClause("IN", [1, 2])


def test_values_are_coerced_to_column_types():
    assert convert_params(SELLER, {"verified": "true"}).where["verified"] == WhereClause("=", True)


def test_association_alias_filters_on_foreign_key():
    filters = convert_params(CUSTOMER, {"seller": "3"})
    assert filters.where == {"seller": WhereClause("=", 3)}
    (criterion,) = where_criteria(CUSTOMER, filters.where)
    assert "customers.seller_id" in _sql(criterion)


def test_free_text_flag_is_ignored():
    assert convert_params(SELLER, {"_q": "acme"}).where == {}


def test_unknown_field():
    with pytest.raises(UnknownAttributeError):
        convert_params(SELLER, {"bogus": "1"})


def test_sort():
    assert convert_params(SELLER, {"_sort": "name:desc"}).sort == SortSpec("name", "DESC")
    assert convert_params(SELLER, {"_sort": "rating"}).sort == SortSpec("rating", "ASC")


def test_sort_rejects_bad_order_and_unknown_field():
    with pytest.raises(InvalidParameterError):
        convert_params(SELLER, {"_sort": "name:sideways"})
    with pytest.raises(UnknownAttributeError):
        convert_params(SELLER, {"_sort": "nope:asc"})


def test_start_and_limit():
    filters = convert_params(SELLER, {"_start": "20", "_limit": "5"})
    assert filters.start == 20
    assert filters.limit == 5


def test_limit_is_clamped_and_negative_means_unlimited():
    assert convert_params(SELLER, {"_limit": str(settings.MAX_LIMIT + 1)}).limit == settings.MAX_LIMIT
    assert convert_params(SELLER, {"_limit": "-1"}).limit is None


def test_malformed_pagination():
    with pytest.raises(InvalidParameterError):
        convert_params(SELLER, {"_limit": "many"})
    with pytest.raises(InvalidParameterError):
        convert_params(SELLER, {"_start": ["1", "2"]})


@pytest.mark.parametrize("key", ["_limit", "_start"])
@pytest.mark.parametrize("value", ["1e999", "inf", "-inf", "nan"])
def test_non_finite_pagination(key, value):
    with pytest.raises(InvalidParameterError):
        convert_params(SELLER, {key: value})


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

def test_list_value_becomes_or_group():
    filters = convert_params(SELLER, {"name": ["Acme", "Bolt"]})
    (criterion,) = where_criteria(SELLER, filters.where)
    assert _sql(criterion).count("sellers.name =") == 2
    assert " OR " in _sql(criterion)


def test_in_operator_is_not_or_chained():
    filters = convert_params(SELLER, {"id_in": ["1", "2"]})
    (criterion,) = where_criteria(SELLER, filters.where)
    assert " IN " in _sql(criterion)
    assert " OR " not in _sql(criterion)


def test_clauses_are_anded():
    filters = convert_params(SELLER, {"name": "Acme", "rating_lt": "3"})
    sql = _sql(apply_where(select(Seller), SELLER, filters.where))
    assert "sellers.name =" in sql
    assert "sellers.rating <" in sql
    assert " AND " in sql


def test_contains_on_non_text_columns_casts_to_string():
    filters = convert_params(CUSTOMER, {"age_contains": "3", "birthday_containss": "2020"})
    sql = str(
        apply_where(select(Customer), CUSTOMER, filters.where).compile(dialect=postgresql.dialect())
    )
    assert "CAST(customers.age AS VARCHAR) ILIKE" in sql
    assert "CAST(customers.birthday AS VARCHAR) LIKE" in sql


def test_contains_on_text_columns_is_not_cast():
    filters = convert_params(CUSTOMER, {"first_name_contains": "an"})
    sql = str(
        apply_where(select(Customer), CUSTOMER, filters.where).compile(dialect=postgresql.dialect())
    )
    assert "customers.first_name ILIKE" in sql
    assert "CAST(" not in sql


def test_window():
    filters = convert_params(SELLER, {"_sort": "name:desc", "_start": "10", "_limit": "5"})
    sql = _sql(apply_window(select(Seller), SELLER, filters))
    assert "ORDER BY sellers.name DESC" in sql
    assert "LIMIT" in sql
    assert "OFFSET" in sql
