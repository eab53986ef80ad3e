"""Tests for config.py"""

import pytest
from comfy_client.config import ComfyClientConfig


def test_default_values():
    """Test default configuration values."""
    assert ComfyClientConfig.DEFAULT_HOST == "127.0.0.1"
    assert ComfyClientConfig.DEFAULT_PORT == 8188
    assert ComfyClientConfig.DEFAULT_BASE_URL == "http://127.0.0.1:8188"
    assert ComfyClientConfig.DEFAULT_TIMEOUT == 30.0


def test_event_stream_config():
    """Test event stream configuration values."""
    assert ComfyClientConfig.WS_PATH == "/ws"
    assert ComfyClientConfig.WS_CLIENT_ID_PARAM == "clientId"
    assert ComfyClientConfig.EVENT_QUEUE_SIZE == 100


def test_core_endpoints():
    """Test core API endpoint templates."""
    assert ComfyClientConfig.ENDPOINT_PROMPT == "/prompt"
    assert ComfyClientConfig.ENDPOINT_QUEUE == "/queue"
    assert ComfyClientConfig.ENDPOINT_HISTORY_ITEM.format(prompt_id="abc") == "/history/abc"
    assert ComfyClientConfig.ENDPOINT_VIEW == "/view"
    assert ComfyClientConfig.ENDPOINT_UPLOAD_IMAGE == "/upload/image"


def test_get_ws_url_http():
    """Test event stream URL for a plain HTTP server."""
    url = ComfyClientConfig.get_ws_url("http://127.0.0.1:8188", "client-1")
    assert url == "ws://127.0.0.1:8188/ws?clientId=client-1"


def test_get_ws_url_https():
    """Test event stream URL switches to wss for HTTPS servers."""
    url = ComfyClientConfig.get_ws_url("https://comfy.example.com", "client-1")
    assert url == "wss://comfy.example.com/ws?clientId=client-1"


def test_get_ws_url_ignores_path():
    """Test base URL path and trailing slash don't leak into the stream URL."""
    url = ComfyClientConfig.get_ws_url("http://host:8188/", "c")
    assert url == "ws://host:8188/ws?clientId=c"


def test_get_ws_url_invalid():
    """Test get_ws_url rejects URLs without a host."""
    with pytest.raises(ValueError) as exc_info:
        ComfyClientConfig.get_ws_url("not-a-url", "c")

    assert "Invalid base URL" in str(exc_info.value)
