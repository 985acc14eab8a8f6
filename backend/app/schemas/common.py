from pydantic import BaseModel
from typing import Any, Dict, List, Optional
import math


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


def success_response(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Standard success envelope"""
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def paginated(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    """List payload with pagination meta"""
    return {
        "items": items,
        "pagination": PaginationMeta(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if limit else 0,
        ).model_dump(),
    }
