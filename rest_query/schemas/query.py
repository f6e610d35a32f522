"""Query descriptor schemas produced from REST query params."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


DEFAULT_START = 0
DEFAULT_LIMIT = 100
NO_LIMIT = -1

# Nesting bound for _where lists and _or/_and groups.
MAX_WHERE_DEPTH = 20

# Publication states known to the content-type registry.
PUBLICATION_STATES = ("live", "preview")

BOOLEAN_OPERATORS = ("or", "and")
QUERY_OPERATORS = ("_where", "_or", "_and")


class RestOperator(str, Enum):
    """Operator suffixes recognised on filter keys, e.g. ``price_gte``.

    ``containss`` and ``ncontainss`` are the case-sensitive variants of
    ``contains`` and ``ncontains``.
    """
    eq = "eq"
    ne = "ne"
    in_ = "in"
    nin = "nin"
    contains = "contains"
    ncontains = "ncontains"
    containss = "containss"
    ncontainss = "ncontainss"
    lt = "lt"
    lte = "lte"
    gt = "gt"
    gte = "gte"
    null = "null"


VALID_REST_OPERATORS = frozenset(op.value for op in RestOperator)


class SortDir(str, Enum):
    asc = "asc"
    desc = "desc"


class SortField(BaseModel):
    """One sort key; ``field`` may be a dotted path such as ``author.name``.

    Also accepts the single-key shape produced by :meth:`to_dict`, nested or
    not::

        SortField.model_validate({"author": {"name": "desc"}})
    """
    model_config = ConfigDict(frozen=True)

    field: str
    dir: SortDir = SortDir.asc

    @model_validator(mode="before")
    @classmethod
    def from_path_mapping(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or set(data) & {"field", "dir"} or len(data) != 1:
            return data
        path: list[str] = []
        value: Any = data
        while isinstance(value, Mapping) and len(value) == 1:
            ((key, value),) = value.items()
            path.append(str(key))
        return {"field": ".".join(path), "dir": value}

    def to_dict(self) -> dict[str, Any]:
        """``{"author": {"name": "desc"}}`` for ``author.name:desc``."""
        *parents, leaf = self.field.split(".")
        entry: dict[str, Any] = {leaf: self.dir.value}
        for part in reversed(parents):
            entry = {part: entry}
        return entry


class LeafClause(BaseModel):
    """A single field comparison.

    ``value`` is whatever the caller sent, untouched::

        # price_gte=10
        LeafClause(field="price", operator=RestOperator.gte, value=10)
    """
    model_config = ConfigDict(frozen=True)

    field: str
    operator: RestOperator = RestOperator.eq
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}


class BooleanClause(BaseModel):
    """Clause groups combined with AND or OR logic.

    Each group is an independently parsed list of clauses. Groups nest::

        # _or=[{"a": 1}, {"_and": [{"b": 2}, {"c": 3}]}]
        BooleanClause(
            operator="or",
            groups=(
                (LeafClause(field="a", value=1),),
                (BooleanClause(operator="and", groups=(...)),),
            ),
        )
    """
    model_config = ConfigDict(frozen=True)

    operator: Literal["and", "or"]
    groups: tuple[tuple[LeafClause | BooleanClause, ...], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": None,
            "operator": self.operator,
            "value": [[clause.to_dict() for clause in group] for group in self.groups],
        }


Clause = LeafClause | BooleanClause


class QueryDescriptor(BaseModel):
    """Normalized pagination, sorting, publication state and filters."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    start: int = Field(default=DEFAULT_START, ge=0)
    limit: int = Field(default=DEFAULT_LIMIT, ge=NO_LIMIT)
    sort: tuple[SortField, ...] | None = None
    publication_state: str | None = Field(default=None, alias="publicationState")
    where: tuple[Clause, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict shape handed to query engines.

        ``sort`` and ``publicationState`` are only present when requested.
        """
        data: dict[str, Any] = {"start": self.start, "limit": self.limit}
        if self.sort is not None:
            data["sort"] = [entry.to_dict() for entry in self.sort]
        if self.publication_state is not None:
            data["publicationState"] = self.publication_state
        data["where"] = [clause.to_dict() for clause in self.where]
        return data
