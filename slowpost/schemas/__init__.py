# slowpost/schemas/__init__.py
"""
Schema package
"""

from .commons_schemas import MessageResponse, HealthResponse
from .letter_schemas import Letter, PendingEditRequest, PendingEditResponse

__all__ = [
    "MessageResponse",
    "HealthResponse",
    "Letter",
    "PendingEditRequest",
    "PendingEditResponse",
]
