from .base import Base
from .form import Form, Submission

__all__ = [
    "Base",
    "Form",
    "Submission",
]
