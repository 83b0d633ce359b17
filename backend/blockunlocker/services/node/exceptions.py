from blockunlocker.exceptions import ChainQueryError, ChainUnavailableError


class NodeAPIError(ChainQueryError):
    """Base exception for chain node RPC errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        transient: bool | None = None,
    ):
        super().__init__(message, transient=transient)
        self.status_code = status_code


class NodeUnavailableError(NodeAPIError, ChainUnavailableError):
    """Node unreachable, timing out or answering with server errors."""

    pass


class NodeResponseError(NodeAPIError):
    """Node reply could not be parsed."""

    pass
