import json
import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from starlette.datastructures import QueryParams

from rest_query.core.config import Settings, get_settings
from rest_query.schemas.query import QueryDescriptor
from rest_query.services.query_params import InvalidInputError, convert_rest_query_params

logger = logging.getLogger(__name__)

SettingsDep = Annotated[Settings, Depends(get_settings)]


def _collect_query_params(query_params: QueryParams) -> dict[str, Any]:
    """Flatten a multi-dict; repeated keys (``id_in=1&id_in=2``) become lists."""
    params: dict[str, Any] = {}
    for key in query_params.keys():
        values = query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


def _decode_where(raw: Any, *, max_length: int) -> Any:
    """Decode ``_where`` sent as a JSON document.

    Repeated ``_where`` params are decoded one by one and kept as a list.
    """
    if isinstance(raw, list):
        return [_decode_where(item, max_length=max_length) for item in raw]

    if len(raw) > max_length:
        raise InvalidInputError("_where payload exceeds size limit")

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidInputError("_where is not valid JSON") from exc
    except RecursionError as exc:
        raise InvalidInputError("_where is nested too deeply") from exc


def get_rest_query(request: Request, settings: SettingsDep) -> QueryDescriptor:
    params = _collect_query_params(request.query_params)
    defaults = {"start": settings.DEFAULT_START, "limit": settings.DEFAULT_LIMIT}

    try:
        if "_where" in params:
            params["_where"] = _decode_where(params["_where"], max_length=settings.MAX_WHERE_LENGTH)
        return convert_rest_query_params(
            params,
            defaults,
            publication_states=settings.PUBLICATION_STATES,
            max_where_depth=settings.MAX_WHERE_DEPTH,
        )
    except InvalidInputError as exc:
        logger.debug("Rejected query params for %s: %s", request.url.path, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


RestQueryDep = Annotated[QueryDescriptor, Depends(get_rest_query)]
