from __future__ import annotations


class SkillsmError(RuntimeError):
    pass


class ValidationError(SkillsmError, ValueError):
    pass


class MissingSourceError(ValidationError):
    pass


class DuplicateSkillError(ValidationError):
    pass


class SkillNotFoundError(SkillsmError, LookupError):
    pass


class BackendError(SkillsmError):
    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message


class MigrationError(SkillsmError):
    pass
