"""Server configuration for URL and subscriber id management.

Provides centralized configuration for the server endpoint and the event
stream subscriber id, loadable from the environment.
"""

import os
from dataclasses import dataclass


@dataclass
class ServerConfig:
    """Configuration for a ComfyUI server connection.

    All fields have sensible defaults for local development but can be
    customized for remote or shared servers.

    Example:
        # Default configuration (localhost)
        config = ServerConfig()

        # Custom configuration
        config = ServerConfig(base_url="https://comfy.example.com", client_id="render-farm-1")

        # From environment variables
        config = ServerConfig.from_env()
    """

    base_url: str = "http://127.0.0.1:8188"

    # Subscriber id for the event stream. None means "generate one per client".
    client_id: str | None = None

    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create ServerConfig from environment variables.

        Environment variables:
            COMFY_URL: Server base URL (default: http://127.0.0.1:8188)
            COMFY_CLIENT_ID: Fixed subscriber id (default: generated per client)
            COMFY_TIMEOUT: HTTP request timeout in seconds (default: 30)

        Returns:
            ServerConfig with values from environment or defaults
        """
        default = cls()

        return cls(
            base_url=os.getenv("COMFY_URL", default.base_url),
            client_id=os.getenv("COMFY_CLIENT_ID") or default.client_id,
            timeout=float(os.getenv("COMFY_TIMEOUT", str(default.timeout))),
        )
