"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these unchanged; api.main maps each class to a status code.
"""


class PolymerLearnError(Exception):
    """Base class for all domain errors."""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class Unauthenticated(PolymerLearnError):
    status_code = 401


class Forbidden(PolymerLearnError):
    status_code = 403


class NotFound(PolymerLearnError):
    status_code = 404


class InvalidState(PolymerLearnError):
    status_code = 400


class InvalidLessonState(InvalidState):
    """The lesson cannot be scored, e.g. it has no questions."""


class Conflict(PolymerLearnError):
    status_code = 409


class ValidationError(PolymerLearnError):
    status_code = 422

    def __init__(self, message: str = "", errors: list = None):
        super().__init__(message)
        self.errors = errors or []
