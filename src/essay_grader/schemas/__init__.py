# src/essay_grader/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .common import ErrorResponse, ThrottledResponse
from .essay import (
    AnnotationSave,
    EssayResponse,
    EssaySubmit,
    FeedbackUpdate,
    FinalizeRequest,
)
from .user import AuthResponse, LoginRequest, Principal, RegisterRequest

__all__ = [
    "ErrorResponse", "ThrottledResponse",
    "AnnotationSave", "EssayResponse", "EssaySubmit", "FeedbackUpdate", "FinalizeRequest",
    "AuthResponse", "LoginRequest", "Principal", "RegisterRequest",
]
