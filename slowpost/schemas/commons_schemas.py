# slowpost/schemas/commons_schemas.py
"""
Shared response schemas
"""

from pydantic import BaseModel
from typing import Dict, Optional


# error body for every failed request
class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    storage: str
    configured: Dict[str, bool]
    live: Dict[str, bool]
    detail: Optional[str] = None
