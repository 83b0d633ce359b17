from .client import ChainClient, NodeClient
from .config import NodeConfig
from .exceptions import NodeAPIError, NodeResponseError, NodeUnavailableError
from .models import ChainBlock, ChainInfo

__all__ = [
    "ChainClient",
    "NodeClient",
    "NodeConfig",
    "NodeAPIError",
    "NodeResponseError",
    "NodeUnavailableError",
    "ChainBlock",
    "ChainInfo",
]
