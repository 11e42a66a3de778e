"""
Domain errors for the IP lookup service.

Every error raised out of the lookup core derives from IPInfoError so the
HTTP layer can map the whole family to a single response shape.
"""

from typing import Optional


class IPInfoError(Exception):
    """Base class for lookup service errors"""


class InvalidInputError(IPInfoError):
    """Text that is not an IPv4 or IPv6 address"""

    def __init__(self, ip_text: str):
        self.ip_text = ip_text
        super().__init__(f'invalid ip address "{ip_text}"')


class DatabaseOpenError(IPInfoError):
    """A database file could not be opened"""

    def __init__(self, database: str, path: str, reason: str):
        self.database = database
        self.path = path
        self.reason = reason
        super().__init__(f"{database} database: cannot open {path}: {reason}")


class DatabaseLookupError(IPInfoError):
    """The database has no usable answer for a valid address"""

    def __init__(self, database: str, ip: str, reason: str):
        self.database = database
        self.ip = ip
        self.reason = reason
        super().__init__(f"{database} lookup for {ip} failed: {reason}")


class RecordNotFoundError(DatabaseLookupError):
    pass


class MalformedHandleError(DatabaseLookupError):
    pass


class ReloadError(IPInfoError):
    """Reload failed; the previous database keeps serving"""

    def __init__(self, database: str, path: str, reason: str):
        self.database = database
        self.path = path
        self.reason = reason
        super().__init__(f"{database} database reload from {path} failed: {reason}")


class SlotEmptyError(IPInfoError):
    def __init__(self, name: str, detail: Optional[str] = None):
        self.name = name
        super().__init__(detail or f"{name} database is not loaded")
