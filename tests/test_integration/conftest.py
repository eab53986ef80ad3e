"""Shared fixtures for integration tests."""

import os
import random
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from comfy_client import ComfyClient, Workflow, WorkflowBuilder

# Read at import time: the unit-test conftest clears COMFY_* for every test.
SERVER_URL = os.getenv("COMFY_URL")


@pytest.fixture
def server_url() -> str:
    if not SERVER_URL:
        pytest.skip("COMFY_URL not set; integration tests need a running server")
    return SERVER_URL


@pytest_asyncio.fixture
async def client(server_url: str) -> AsyncIterator[ComfyClient]:
    async with ComfyClient(base_url=server_url, timeout=30.0) as comfy:
        yield comfy


@pytest.fixture
def blank_image_workflow() -> Workflow:
    """Model-free workflow: a random solid color image saved to the output folder."""
    builder = WorkflowBuilder()
    color = random.randint(0, 0xFFFFFF)
    image = builder.add_node("EmptyImage", {"width": 64, "height": 64, "batch_size": 1, "color": color})
    save = builder.add_node("SaveImage", {"filename_prefix": "comfy_client_test"})
    builder.connect(image, 0, save, "images")
    return builder.build()
