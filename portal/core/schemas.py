from pydantic import BaseModel
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint; failures use the same shape via error_handlers."""
    success: bool = True
    data: Optional[T] = None
    error: Optional[Dict[str, Any]] = None


def ok(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": data, "error": None}
