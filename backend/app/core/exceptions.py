class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when a schedule cannot be resolved for the requested time."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class SchedulingExhaustedError(SchedulerError):
    """Raised when seek-forward finds no free slot inside its search window."""
    def __init__(self, message: str, *, desired_time=None, searched_slots: int = 0):
        details = {"searched_slots": searched_slots}
        if desired_time is not None:
            details["desired_time"] = desired_time.isoformat()
        super().__init__(message, details=details)
        self.searched_slots = searched_slots

class StorageError(AppError):
    """Raised when the announcement store cannot be read or written."""
    def __init__(self, message: str = "Storage is temporarily unavailable"):
        super().__init__(message, status_code=503)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
