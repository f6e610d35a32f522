"""Convert REST query params into a :class:`QueryDescriptor`.

Query strings follow the REST params convention::

    ?_sort=price:desc,id&_start=20&_limit=10&category=books&price_gte=10

- ``_sort`` / ``_start`` / ``_limit`` / ``_publicationState`` are parsed by
  their own converters
- every other root key is a legacy shorthand for a ``_where`` entry
- ``_where`` holds explicit filter clauses, possibly nested in ``_or`` / ``_and``

Filter keys carry their operator as a suffix after the last underscore
(``price_gte``). Keys whose suffix is not a known operator are plain equality
filters on the whole key (``first_name``).
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from rest_query.schemas.query import (
    BOOLEAN_OPERATORS,
    DEFAULT_LIMIT,
    DEFAULT_START,
    MAX_WHERE_DEPTH,
    NO_LIMIT,
    PUBLICATION_STATES,
    QUERY_OPERATORS,
    VALID_REST_OPERATORS,
    BooleanClause,
    Clause,
    LeafClause,
    QueryDescriptor,
    RestOperator,
    SortDir,
    SortField,
)

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, Any] = MappingProxyType({})

# Root keys handled outside of the filter pipeline.
_RESERVED_PARAMS = frozenset({"_sort", "_start", "_limit", "_where", "_publicationState"})


class InvalidInputError(ValueError):
    """Raised when query params cannot be converted."""


def _type_name(value: Any) -> str:
    return "None" if value is None else type(value).__name__


def convert_rest_query_params(
    params: Mapping[str, Any] = _EMPTY,
    defaults: Mapping[str, Any] = _EMPTY,
    *,
    publication_states: Collection[str] = PUBLICATION_STATES,
    max_where_depth: int = MAX_WHERE_DEPTH,
) -> QueryDescriptor:
    """Build a query descriptor from raw query params.

    ``defaults`` overrides the built-in ``start``/``limit`` seed and is itself
    overridden by anything found in ``params``. A ``publicationState`` default
    is checked against ``publication_states`` like the ``_publicationState``
    param.

    Raises :class:`InvalidInputError` on any invalid value; there is no partial
    result.
    """
    if not isinstance(params, Mapping):
        raise InvalidInputError(
            f"convert_rest_query_params expected a mapping got {_type_name(params)}"
        )
    if not isinstance(defaults, Mapping):
        raise InvalidInputError(
            f"convert_rest_query_params expected mapping defaults got {_type_name(defaults)}"
        )

    final_params: dict[str, Any] = {"start": DEFAULT_START, "limit": DEFAULT_LIMIT, **defaults}

    for key in ("publicationState", "publication_state"):
        if final_params.get(key) is not None:
            final_params.update(
                convert_publication_state_params(final_params.pop(key), publication_states)
            )

    if not params:
        return _build_descriptor(final_params)

    if "_sort" in params:
        final_params["sort"] = parse_sort_fields(params["_sort"])

    if "_start" in params:
        final_params["start"] = convert_start_query_params(params["_start"])

    if "_limit" in params:
        final_params["limit"] = convert_limit_query_params(params["_limit"])

    if "_publicationState" in params:
        final_params.update(
            convert_publication_state_params(params["_publicationState"], publication_states)
        )

    where_params = convert_extra_root_params(
        {key: value for key, value in params.items() if key not in _RESERVED_PARAMS}
    )

    where_clauses: list[Clause] = []

    if where_params:
        where_clauses.extend(convert_where_params(where_params, max_depth=max_where_depth))

    if "_where" in params:
        where_clauses.extend(convert_where_params(params["_where"], max_depth=max_where_depth))

    final_params["where"] = where_clauses

    logger.debug(
        "Converted REST query params: %d where clause(s), %d sort key(s)",
        len(where_clauses),
        len(final_params.get("sort") or ()),
    )
    return _build_descriptor(final_params)


def _build_descriptor(values: dict[str, Any]) -> QueryDescriptor:
    try:
        return QueryDescriptor.model_validate(values)
    except ValidationError as exc:
        # Only reachable through caller-supplied defaults.
        raise InvalidInputError(f"invalid query defaults: {exc}") from exc


def convert_extra_root_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Strip the ``_`` prefix from root params that are not query operators.

    Plugins pass their own filters as ``_field`` at the root; they are treated
    like ``field``.
    """
    converted: dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(key, str) and key.startswith("_") and key not in QUERY_OPERATORS:
            converted[key[1:]] = value
        else:
            converted[key] = value
    return converted


def parse_sort_fields(sort_query: Any) -> list[SortField]:
    """Parse ``"id:asc,price:desc"`` or ``["id:asc", "price:desc"]``.

    The order defaults to ascending and is case-insensitive. Whitespace is
    not trimmed, so ``"id: asc"`` is rejected.
    """
    if isinstance(sort_query, str):
        sort_query = sort_query.split(",")

    if not isinstance(sort_query, (list, tuple)):
        raise InvalidInputError(
            f"convert_sort_query_params expected a string or a list of strings, got {_type_name(sort_query)}"
        )

    for clause in sort_query:
        if not isinstance(clause, str):
            raise InvalidInputError(
                f'convert_sort_query_params expected a list of strings but found "{_type_name(clause)}"'
            )

    sort_fields: list[SortField] = []
    for clause in sort_query:
        field, *rest = clause.split(":")
        order = rest[0] if rest else SortDir.asc.value

        if not field:
            raise InvalidInputError(f"Sort field cannot be empty (got {clause!r})")

        try:
            direction = SortDir(order.lower())
        except ValueError as exc:
            raise InvalidInputError(
                f"Sort order can only be one of asc|desc|ASC|DESC, got {order!r}"
            ) from exc

        sort_fields.append(SortField(field=field, dir=direction))

    return sort_fields


def convert_sort_query_params(sort_query: Any) -> list[dict[str, Any]]:
    """Sort keys as single-key mappings; dotted paths nest.

    ``"author.name:desc,id"`` gives
    ``[{"author": {"name": "desc"}}, {"id": "asc"}]``.
    """
    return [sort_field.to_dict() for sort_field in parse_sort_fields(sort_query)]


def _to_integer(value: Any, converter: str) -> int:
    """Coerce *value* to an int, refusing anything that is not integral."""
    if isinstance(value, bool):
        raise InvalidInputError(f"{converter} expected an integer got a boolean ({value})")

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidInputError(f"{converter} expected an integer got {value}")
        return int(value)

    if not isinstance(value, str):
        raise InvalidInputError(f"{converter} expected an integer got {_type_name(value)}")

    text = value.strip()
    if not text:
        raise InvalidInputError(f"{converter} expected an integer got an empty string")
    # int() and float() accept digit separators, query strings do not
    if "_" in text:
        raise InvalidInputError(f"{converter} expected an integer got {value!r}")

    try:
        return int(text)
    except ValueError:
        pass

    try:
        number = float(text)
    except ValueError:
        raise InvalidInputError(f"{converter} expected an integer got {value!r}") from None

    if not number.is_integer():
        raise InvalidInputError(f"{converter} expected an integer got {value!r}")
    return int(number)


def convert_start_query_params(start_query: Any) -> int:
    start = _to_integer(start_query, "convert_start_query_params")
    if start < 0:
        raise InvalidInputError(f"convert_start_query_params expected a positive integer got {start}")
    return start


def convert_limit_query_params(limit_query: Any) -> int:
    """``-1`` means no limit."""
    limit = _to_integer(limit_query, "convert_limit_query_params")
    if limit != NO_LIMIT and limit < 0:
        raise InvalidInputError(f"convert_limit_query_params expected a positive integer got {limit}")
    return limit


def convert_publication_state_params(
    publication_state: Any,
    publication_states: Collection[str] = PUBLICATION_STATES,
) -> dict[str, str]:
    if not isinstance(publication_state, str) or publication_state not in publication_states:
        allowed = ", ".join(publication_states)
        raise InvalidInputError(
            f"convert_publication_state_params expected a value from: {allowed}. "
            f"Got {publication_state!r} instead"
        )
    return {"publicationState": publication_state}


def convert_where_params(
    where_params: Any,
    *,
    depth: int = 0,
    max_depth: int = MAX_WHERE_DEPTH,
) -> list[Clause]:
    """Flatten a mapping (or a list of mappings) of filter keys into clauses.

    Clause order follows the mapping's key order, and list elements are
    concatenated in order.

    Nested lists and ``_or``/``_and`` groups deeper than ``max_depth`` are
    rejected.
    """
    if depth > max_depth:
        raise InvalidInputError(f"where clauses are nested deeper than {max_depth} levels")

    if isinstance(where_params, (list, tuple)):
        clauses: list[Clause] = []
        for item in where_params:
            clauses.extend(convert_where_params(item, depth=depth + 1, max_depth=max_depth))
        return clauses

    if not isinstance(where_params, Mapping):
        raise InvalidInputError(
            f"convert_where_params expected a mapping or a list of mappings, got {_type_name(where_params)}"
        )

    return [
        convert_where_clause(str(key), value, depth=depth, max_depth=max_depth)
        for key, value in where_params.items()
    ]


def convert_where_clause(
    where_clause: str,
    value: Any,
    *,
    depth: int = 0,
    max_depth: int = MAX_WHERE_DEPTH,
) -> Clause:
    """Parse a single filter key such as ``id_ne`` or ``text_ncontains``.

    The text after the last underscore is the operator when it belongs to the
    operator vocabulary; otherwise the whole key is the field and the operator
    is ``eq``. A field literally named ``cost_lt`` therefore cannot be
    filtered by equality through this syntax.
    """
    field, separator, operator = where_clause.rpartition("_")

    if not separator:
        return LeafClause(field=where_clause, value=value)

    if operator in BOOLEAN_OPERATORS and field == "":
        groups = value if isinstance(value, (list, tuple)) else [value]
        return BooleanClause(
            operator=operator,
            groups=[
                convert_where_params(group, depth=depth + 1, max_depth=max_depth)
                for group in groups
            ],
        )

    # the field itself contains underscores
    if operator not in VALID_REST_OPERATORS:
        return LeafClause(field=where_clause, value=value)

    return LeafClause(field=field, operator=RestOperator(operator), value=value)
