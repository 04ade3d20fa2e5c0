from typing import Optional


class StoreError(RuntimeError):
    """The persistence layer failed (I/O, constraint violation, schema)."""


class GuardViolation(ValueError):
    """A business rule blocked a write before it reached the store."""


class NotFoundError(ValueError):
    pass


class ValidationError(ValueError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
