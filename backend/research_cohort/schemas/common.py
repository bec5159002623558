from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OperationError(BaseModel):
    """Caller-facing failure. Returned instead of raising."""
    error: str


class OperationSuccess(BaseModel):
    success: bool = True


NOT_AUTHENTICATED = "User not authenticated"
ACCESS_DENIED = "Project not found or access denied"
