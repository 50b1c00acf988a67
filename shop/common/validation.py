from typing import Type, TypeVar

from pydantic import BaseModel
from quart import request

M = TypeVar("M", bound=BaseModel)


class InvalidBody(ValueError):
    pass


async def parse_body(model: Type[M]) -> M:
    """Validate the JSON request body against ``model``.

    Raises ``InvalidBody`` for a missing or non-object body and
    ``pydantic.ValidationError`` for field errors; both are answered with a
    VALIDATION_ERROR envelope by the app's error handlers.
    """
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidBody("Request body must be a JSON object.")
    return model.model_validate(data)
