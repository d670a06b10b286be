"""Controller and routing exception classes."""


class ControllerError(Exception):
    """Base exception for SDN controller operations."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
        detail: str | None = None,
    ):
        super().__init__(message)
        self.path = path
        self.status_code = status_code
        self.detail = detail


class ControllerReadError(ControllerError):
    """Reading an object or collection from the controller failed."""

    pass


class ControllerWriteError(ControllerError):
    """Creating, updating or deleting a controller object failed."""

    pass


class RouteError(Exception):
    """Kernel routing table operation failed."""

    def __init__(self, message: str, destination: str | None = None):
        self.destination = destination
        super().__init__(message)
