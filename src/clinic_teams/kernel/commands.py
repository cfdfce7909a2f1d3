"""
Command parsing

Commands are pydantic models describing what a caller wants to change.
Callers hand the facade plain dicts (form data); build_command turns them
into validated commands and reports problems with the domain ValidationError
rather than pydantic's own exception type.
"""

from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from clinic_teams.kernel.errors import ValidationError

C = TypeVar("C", bound=BaseModel)


def build_command(command_type: type[C], data: dict[str, Any]) -> C:
    """
    Validate raw input into a command model

    Args:
        command_type: Command model class
        data: Raw field values

    Returns:
        Validated command

    Raises:
        ValidationError: First failing field, e.g. "name: Field required"
    """
    try:
        return command_type.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        message = f"{field}: {first['msg']}" if field else first["msg"]
        raise ValidationError(message, field=field) from e
