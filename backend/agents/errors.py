"""
Deposit monitor exception hierarchy.
"""


class MonitorError(Exception):
    """Base error for the deposit monitoring subsystem"""
    pass


class StorageError(MonitorError):
    """Monitoring window / pending transaction storage failed"""
    def __init__(self, operation: str, reason: str = "Unknown"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage {operation} failed: {reason}")


class SubscriptionError(MonitorError):
    """Live log subscription could not be opened or was rejected"""
    pass


class DecodeError(MonitorError):
    """Chain log event could not be decoded"""
    pass


class MonitorConfigError(MonitorError):
    """Startup-time misconfiguration (fatal)"""
    pass
