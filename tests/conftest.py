"""Shared test fixtures."""

import pytest

from comfy_client.workflow import Workflow, WorkflowBuilder


@pytest.fixture(autouse=True)
def clean_comfy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of the caller's COMFY_* environment."""
    for name in ("COMFY_URL", "COMFY_CLIENT_ID", "COMFY_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def simple_workflow() -> Workflow:
    """Checkpoint -> text encode -> sampler -> save."""
    builder = WorkflowBuilder()
    ckpt = builder.add_node("CheckpointLoaderSimple", {"ckpt_name": "sd15.safetensors"})
    text = builder.add_node("CLIPTextEncode", {"text": "a red fox"})
    sampler = builder.add_node("KSampler", {"seed": 1, "steps": 20})
    save = builder.add_node("SaveImage", {"filename_prefix": "ComfyUI"})
    builder.connect(ckpt, 1, text, "clip")
    builder.connect(ckpt, 0, sampler, "model")
    builder.connect(text, 0, sampler, "positive")
    builder.connect(sampler, 0, save, "images")
    return builder.build()
