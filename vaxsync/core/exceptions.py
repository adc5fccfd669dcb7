"""
Custom Application Exceptions
"""
from typing import Any, Dict, Optional


class VaxSyncException(Exception):
    """Base exception for VaxSync application"""

    code = "VAXSYNC_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(VaxSyncException):
    """Raised when a required identifier or quantity is missing or invalid"""

    code = "VALIDATION_ERROR"


class NotFoundError(VaxSyncException):
    """Raised when no batch, dose definition or vaccine exists for a key"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any, message: Optional[str] = None):
        super().__init__(message or f"{entity} not found: {key}")
        self.entity = entity
        self.key = key

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "key": str(self.key)})
        return data


class InsufficientStockError(VaxSyncException):
    """Raised when a reservation or deduction cannot be fully satisfied"""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, available: int, requested: int, total_vials: int = 0, already_reserved: int = 0):
        super().__init__(
            f"Not enough vials available. Available: {available}, Requested: {requested}"
        )
        self.available = available
        self.requested = requested
        self.total_vials = total_vials
        self.already_reserved = already_reserved

    @property
    def shortage(self) -> int:
        return max(0, self.requested - self.available)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "available": self.available,
            "requested": self.requested,
            "totalVials": self.total_vials,
            "alreadyReserved": self.already_reserved,
            "shortage": self.shortage,
        })
        return data


class StorageError(VaxSyncException):
    """Raised when an underlying data-store call fails or times out"""

    code = "STORAGE_ERROR"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage failure during {operation}{detail}")
        self.operation = operation
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["operation"] = self.operation
        return data
