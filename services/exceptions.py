from typing import List


class FormBuilderError(Exception):
    """Base class for errors raised by the form services"""
    pass


class NotFoundError(FormBuilderError):
    """Resource missing, inactive (public mode) or owned by someone else (manage mode)"""

    def __init__(self, message: str = "Form not found"):
        super().__init__(message)
        self.message = message


class ForbiddenError(FormBuilderError):
    """Access denied where existence may be revealed"""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)
        self.message = message


class SchemaValidationError(FormBuilderError):
    """Form field definitions are malformed"""

    def __init__(self, errors: List[str]):
        self.errors = errors
        self.message = "; ".join(errors)
        super().__init__(self.message)


class MissingRequiredFieldError(FormBuilderError):
    """First required field (in form order) that has no value"""

    def __init__(self, label: str):
        self.label = label
        self.message = f'Field "{label}" is required'
        super().__init__(self.message)


class UpstreamFailure(FormBuilderError):
    """Storage, email or identity provider call failed or timed out"""
    pass


class AuthenticationError(FormBuilderError):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
        self.message = message
