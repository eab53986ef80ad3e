"""Configuration for the ComfyUI client.

All endpoints, hosts, ports, and parameters are defined here as class variables.
This enables easy modification without changing code throughout the library.
"""

from urllib.parse import urlencode, urlsplit


class ComfyClientConfig:
    """Configuration for the ComfyUI client.

    All endpoints, hosts, ports, and parameters are defined here as class variables.
    This enables easy modification without changing code throughout the library.
    """

    # Server Connection
    DEFAULT_HOST: str = "127.0.0.1"
    DEFAULT_PORT: int = 8188
    DEFAULT_BASE_URL: str = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
    DEFAULT_TIMEOUT: float = 30.0

    # Event Stream (WebSocket) Configuration
    WS_PATH: str = "/ws"
    WS_CLIENT_ID_PARAM: str = "clientId"
    WS_CONNECT_TIMEOUT: float = 10.0
    WS_CLOSE_TIMEOUT: float = 5.0
    WS_MAX_MESSAGE_SIZE: int = 16 * 1024 * 1024  # Preview frames can be large
    EVENT_QUEUE_SIZE: int = 100

    # Prompt / Queue Endpoints
    ENDPOINT_PROMPT: str = "/prompt"
    ENDPOINT_QUEUE: str = "/queue"
    ENDPOINT_INTERRUPT: str = "/interrupt"

    # History Endpoints
    ENDPOINT_HISTORY: str = "/history"
    ENDPOINT_HISTORY_ITEM: str = "/history/{prompt_id}"

    # Server Info Endpoints
    ENDPOINT_SYSTEM_STATS: str = "/system_stats"
    ENDPOINT_OBJECT_INFO: str = "/object_info"
    ENDPOINT_OBJECT_INFO_ITEM: str = "/object_info/{node_class}"
    ENDPOINT_EMBEDDINGS: str = "/embeddings"
    ENDPOINT_MODELS: str = "/models"
    ENDPOINT_MODELS_FOLDER: str = "/models/{folder}"
    ENDPOINT_FREE: str = "/free"
    ENDPOINT_FEATURES: str = "/features"

    # Image Transfer Endpoints
    ENDPOINT_UPLOAD_IMAGE: str = "/upload/image"
    ENDPOINT_VIEW: str = "/view"
    DEFAULT_UPLOAD_TYPE: str = "input"

    # Job Monitoring Configuration
    DEFAULT_WAIT_TIMEOUT: float | None = None
    HISTORY_CHECK_ON_WAIT: bool = True

    @classmethod
    def get_ws_url(cls, base_url: str, client_id: str) -> str:
        """Build the event stream URL for a client id.

        Args:
            base_url: HTTP(S) base URL of the server
            client_id: Subscriber identifier sent as the ``clientId`` query parameter

        Returns:
            ws:// or wss:// URL

        Raises:
            ValueError: If base_url has no host
        """
        parts = urlsplit(base_url)
        if not parts.netloc:
            msg = f"Invalid base URL: {base_url!r}"
            raise ValueError(msg)

        scheme = "wss" if parts.scheme == "https" else "ws"
        query = urlencode({cls.WS_CLIENT_ID_PARAM: client_id})
        return f"{scheme}://{parts.netloc}{cls.WS_PATH}?{query}"
