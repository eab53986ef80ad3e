"""Shared test fixtures for CLI tests."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from comfy_client.models import ExecutionResult, HistoryStatus, ImageInfo, NodeOutput


@pytest.fixture
def temp_workflow_file(tmp_path: Path) -> Path:
    """Create a temporary API-format workflow file for testing."""
    workflow_file = tmp_path / "workflow_api.json"
    workflow_file.write_text(
        json.dumps(
            {
                "3": {"class_type": "KSampler", "inputs": {"seed": 1, "steps": 20, "model": ["4", 0]}},
                "4": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "sd15.safetensors"}},
                "6": {"class_type": "CLIPTextEncode", "inputs": {"text": "a dog", "clip": ["4", 1]}},
                "9": {"class_type": "SaveImage", "inputs": {"images": ["3", 0]}},
            }
        )
    )
    return workflow_file


@pytest.fixture
def temp_image_file(tmp_path: Path) -> Path:
    """Create a temporary image file for testing."""
    image_file = tmp_path / "test_image.png"
    image_file.write_bytes(b"fake image data")
    return image_file


@pytest.fixture
def mock_comfy_client():
    """Create a mock ComfyClient for CLI testing."""
    with patch("comfy_client_cli.main.ComfyClient") as mock_client_class:
        # Create mock client instance
        mock_client = MagicMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        # Configure the class to return our mock instance
        mock_client_class.return_value = mock_client

        yield mock_client


@pytest.fixture
def completed_result() -> ExecutionResult:
    """Create a completed execution result."""
    image = ImageInfo(filename="out_00001_.png", subfolder="", type="output")
    return ExecutionResult(
        prompt_id="test-prompt-123",
        images=[image],
        outputs={"9": NodeOutput(images=[image])},
        status=HistoryStatus(status_str="success", completed=True),
        start_time=1000.0,
        end_time=1002.5,
    )
