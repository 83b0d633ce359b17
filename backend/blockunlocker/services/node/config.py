from pydantic import BaseModel


class NodeConfig(BaseModel):
    """Configuration for the chain node JSON-RPC client."""

    url: str = "http://127.0.0.1:20206/json_rpc"
    timeout_seconds: float = 10.0
    max_connections: int = 10
    max_keepalive_connections: int = 5
    max_retries: int = 3
