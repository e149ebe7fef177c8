# apps/backend/linguista/bodies.py
from __future__ import annotations

import json
from typing import Callable, Type, TypeVar

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError

from auth import Principal, get_current_user

from .errors import InvalidArgument

ModelT = TypeVar("ModelT", bound=BaseModel)


def json_body(model: Type[ModelT]) -> Callable[..., ModelT]:
    """
    Dependency that parses the JSON body into `model` only after the caller
    is authenticated, so a bad token is always a 401 whatever the body holds.
    An empty body parses as {}.
    """
    async def _parse(
        request: Request,
        _user: Principal = Depends(get_current_user),
    ) -> ModelT:
        raw = await request.body()
        try:
            data = json.loads(raw) if raw.strip() else {}
            return model.model_validate(data)
        except (ValueError, ValidationError):
            raise InvalidArgument("Invalid request body")

    return _parse
