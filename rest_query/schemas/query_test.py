"""Unit tests for the query descriptor schemas."""

import pytest
from pydantic import ValidationError

from rest_query.schemas.query import (
    VALID_REST_OPERATORS,
    BooleanClause,
    LeafClause,
    QueryDescriptor,
    RestOperator,
    SortDir,
    SortField,
)


class TestQueryDescriptor:
    """Tests for QueryDescriptor validation and serialization."""

    def test_defaults(self):
        descriptor = QueryDescriptor()
        assert descriptor.start == 0
        assert descriptor.limit == 100
        assert descriptor.where == ()

    def test_limit_minus_one_allowed(self):
        assert QueryDescriptor(limit=-1).limit == -1

    @pytest.mark.parametrize("values", [{"limit": -2}, {"start": -1}, {"unknown": 1}])
    def test_invalid_values(self, values):
        with pytest.raises(ValidationError):
            QueryDescriptor.model_validate(values)

    def test_publication_state_alias(self):
        by_alias = QueryDescriptor.model_validate({"publicationState": "live"})
        by_name = QueryDescriptor(publication_state="live")
        assert by_alias == by_name
        assert by_alias.to_dict()["publicationState"] == "live"

    def test_to_dict_omits_unrequested_keys(self):
        assert QueryDescriptor().to_dict() == {"start": 0, "limit": 100, "where": []}

    def test_to_dict_nested_boolean(self):
        descriptor = QueryDescriptor(
            where=[
                LeafClause(field="a", value=1),
                BooleanClause(
                    operator="and",
                    groups=[[LeafClause(field="b", operator=RestOperator.null, value=True)]],
                ),
            ],
        )
        assert descriptor.to_dict()["where"] == [
            {"field": "a", "operator": "eq", "value": 1},
            {
                "field": None,
                "operator": "and",
                "value": [[{"field": "b", "operator": "null", "value": True}]],
            },
        ]


class TestSortField:
    """Tests for SortField parsing and serialization."""

    def test_to_dict_nests_dotted_path(self):
        sort_field = SortField(field="author.address.city", dir=SortDir.desc)
        assert sort_field.to_dict() == {"author": {"address": {"city": "desc"}}}

    def test_from_single_key_mapping(self):
        assert SortField.model_validate({"id": "desc"}) == SortField(field="id", dir=SortDir.desc)

    def test_from_nested_mapping(self):
        sort_field = SortField.model_validate({"author": {"name": "asc"}})
        assert sort_field.field == "author.name"

    def test_frozen(self):
        sort_field = SortField(field="id")
        with pytest.raises(ValidationError):
            sort_field.dir = SortDir.desc  # type: ignore[misc]

    def test_invalid_direction(self):
        with pytest.raises(ValidationError):
            SortField.model_validate({"id": "sideways"})


class TestRestOperator:
    """Tests for the operator vocabulary."""

    def test_vocabulary(self):
        assert VALID_REST_OPERATORS == {
            "eq", "ne", "in", "nin", "contains", "ncontains", "containss",
            "ncontainss", "lt", "lte", "gt", "gte", "null",
        }

    def test_boolean_operator_restricted(self):
        with pytest.raises(ValidationError):
            BooleanClause(operator="xor")

    def test_leaf_operator_restricted(self):
        with pytest.raises(ValidationError):
            LeafClause(field="a", operator="like", value=1)
