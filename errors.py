"""
Typed failures raised by the storage layer.

Lookups that find nothing return None instead of raising; everything here
represents a call that could not be completed.
"""
from typing import Any, Iterable, Optional


class StorageError(Exception):
    """Base exception for all storage errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(StorageError):
    """Raised when input fails a documented constraint, before any write."""

    def __init__(self, field: str, reason: str):
        super().__init__(message=f"{field} {reason}", details={"field": field, "reason": reason})
        self.field = field
        self.reason = reason


class ConflictError(StorageError):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, entity: str, fields: Iterable[str] = ()):
        fields = list(fields)
        message = f"{entity} already exists"
        if fields:
            message += f" ({', '.join(fields)})"
        super().__init__(message=message, details={"entity": entity, "fields": fields})
        self.entity = entity
        self.fields = fields


class InvalidIdentifier(StorageError):
    """Raised when an identifier cannot be converted to a document id."""

    def __init__(self, value: Any):
        super().__init__(message=f"Invalid id: {value!r}", details={"value": str(value)})
        self.value = value


class TransientStoreError(StorageError):
    """Raised when the database driver fails (connectivity, server error)."""

    def __init__(self, operation: str, reason: Optional[str] = None):
        message = f"Store operation '{operation}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"operation": operation, "reason": reason})
        self.operation = operation


class BootstrapError(StorageError):
    """Raised when startup cannot create the administrator account."""

    def __init__(self, setting: str, value: str):
        super().__init__(
            message=f"Cannot create admin: {setting}={value!r} belongs to an existing non-admin user",
            details={"setting": setting, "value": value},
        )
        self.setting = setting
        self.value = value
