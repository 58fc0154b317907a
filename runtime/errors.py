"""
Error taxonomy for status ingestion and digest runs

- InvalidInput: blank or malformed submission, rejected before persistence
- PersistenceFailure: the Record Store rejected or could not take a write
- DeliveryFailure: one destination's notification call failed
- DirectoryFailure: owner enumeration failed during a digest run
- ConfigurationFailure: routing descriptor missing or malformed at startup
"""

from typing import Optional


class StatusBotError(Exception):
    """Base class for all errors raised by the status bot"""


class InvalidInput(StatusBotError):
    """Submission rejected before any side effect"""


class PersistenceFailure(StatusBotError):
    """Record Store unreachable or write rejected"""


class DeliveryFailure(StatusBotError):
    """Notification delivery to a single destination failed"""

    def __init__(self, destination: str, reason: str):
        self.destination = destination
        self.reason = reason
        super().__init__(f"Delivery to {destination} failed: {reason}")


class DirectoryFailure(StatusBotError):
    """Owner enumeration failed"""


class ConfigurationFailure(StatusBotError):
    """Fatal startup configuration error"""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)
