class RecordNotFound(Exception):
    """Missing row, or an id below 1."""

    def __init__(self, message: str = "record not found"):
        super().__init__(message)


class EditConflict(Exception):
    def __init__(self, message: str = "edit conflict"):
        super().__init__(message)


class ValidationFailed(Exception):
    def __init__(self, errors: dict[str, str]):
        super().__init__("validation failed")
        self.errors = errors


class DuplicateEmail(Exception):
    pass


class InvalidCredentials(Exception):
    pass