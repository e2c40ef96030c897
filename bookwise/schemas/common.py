# bookwise/schemas/common.py

from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bookwise.core.errors import ValidationError


def parse_model(model: type[BaseModel], data: Any) -> Any:
    """Validate ``data`` into ``model``; pydantic failures become the engine's ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"{field}: {first['msg']}" if field else first["msg"], field=field)
