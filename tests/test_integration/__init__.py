"""Integration tests for comfy_client.

These tests require:
- A ComfyUI server running (use: python main.py --cpu)
- COMFY_URL pointing at it (e.g. http://127.0.0.1:8188)

To run:
    COMFY_URL=http://127.0.0.1:8188 pytest tests/test_integration/ -v
"""
