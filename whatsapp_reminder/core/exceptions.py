from __future__ import annotations


class AppError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400, details: dict | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found", details: dict | None = None) -> None:
        super().__init__(code="not_found", message=message, status_code=404, details=details)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict | None = None) -> None:
        super().__init__(code="conflict", message=message, status_code=409, details=details)


class ConfigurationError(AppError):
    def __init__(self, message: str = "Invalid configuration", details: dict | None = None) -> None:
        super().__init__(code="configuration_error", message=message, status_code=500, details=details)


class StoreReadError(AppError):
    def __init__(self, message: str = "Could not read reminder entries", details: dict | None = None) -> None:
        super().__init__(code="store_read_error", message=message, status_code=503, details=details)


class StoreWriteError(AppError):
    def __init__(self, message: str = "Could not write reminder entries", details: dict | None = None) -> None:
        super().__init__(code="store_write_error", message=message, status_code=503, details=details)


class DispatchTransportError(AppError):
    def __init__(self, message: str = "Notification transport failed", details: dict | None = None) -> None:
        super().__init__(code="dispatch_transport_error", message=message, status_code=502, details=details)


class EntryParseError(AppError):
    def __init__(self, message: str = "Malformed reminder entry", details: dict | None = None) -> None:
        super().__init__(code="entry_parse_error", message=message, status_code=422, details=details)


class RunCancelledError(AppError):
    def __init__(self, message: str = "Run cancelled", details: dict | None = None) -> None:
        super().__init__(code="run_cancelled", message=message, status_code=499, details=details)


class MailServiceError(AppError):
    """Error response from the mail service; `http_status` is the upstream status code."""

    def __init__(self, message: str, http_status: int = 0, details: dict | None = None) -> None:
        super().__init__(code="mail_service_error", message=message, status_code=502, details=details)
        self.http_status = http_status

    def __str__(self) -> str:
        return f"mail service error (HTTP {self.http_status}): {self.message}"
