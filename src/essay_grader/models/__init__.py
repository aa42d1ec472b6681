# src/essay_grader/models/__init__.py
"""SQLAlchemy models for the essay grading application."""

from .classroom import SchoolClass
from .essay import Annotation, Comment, Essay, EssayStatus
from .task import Task, task_classes
from .user import Role, User

__all__ = [
    "SchoolClass",
    "Annotation", "Comment", "Essay", "EssayStatus",
    "Task", "task_classes",
    "Role", "User",
]
