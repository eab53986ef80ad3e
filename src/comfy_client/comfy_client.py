"""Core client for prompt submission, queue and history management.

Provides high-level interface for:
- Prompt (workflow) submission
- Progress monitoring over the WebSocket event stream
- Queue and history management
- Image upload and download
- Server information (system stats, node classes, models)
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import TypeAdapter

from .config import ComfyClientConfig
from .event_stream import EventStream
from .exceptions import ExecutionError, RemoteRejectionError
from .http_utils import HttpUtils
from .models import (
    ExecutionResult,
    ImageInfo,
    NodeClassInfo,
    QueuePromptResponse,
    SystemStats,
    UploadImageResponse,
)
from .records import decode_history, decode_queue_status
from .server_config import ServerConfig
from .tracker import history_error
from .workflow import Workflow, load_workflow

if TYPE_CHECKING:
    import asyncio

    from .models import HistoryItem, QueueStatus
    from .tracker import ProgressState, ProgressTracker
    from .types import JSONObject

_OBJECT_INFO_ADAPTER: TypeAdapter[dict[str, NodeClassInfo]] = TypeAdapter(dict[str, NodeClassInfo])


class ComfyClient:
    """Main client for interacting with a ComfyUI server.

    Provides:
    - REST API access to prompts, queue, history and files
    - WebSocket-based progress tracking (one event stream per client)
    - An explicit subscriber id (client_id) per instance

    Example:
        async with ComfyClient() as client:
            result = await client.execute(workflow, timeout=300)
            for image in result.images:
                await client.save_image(image, Path("out") / image.filename)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client_id: str | None = None,
        server_config: ServerConfig | None = None,
    ) -> None:
        """Initialize ComfyUI client.

        Args:
            base_url: Server base URL (default from server_config)
            timeout: Request timeout in seconds (default from server_config)
            client_id: Event stream subscriber id (default: random uuid4 per client)
            server_config: Connection settings (default: ServerConfig.from_env())
        """
        config = server_config or ServerConfig.from_env()

        self.base_url: str = (base_url or config.base_url).rstrip("/")
        self.timeout: float = timeout or config.timeout
        self.client_id: str = client_id or config.client_id or str(uuid.uuid4())

        # HTTP client for REST API
        self._session = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

        # Event stream, connected on first use
        self._events: EventStream | None = None

    # ============================================================================
    # HTTP helpers
    # ============================================================================

    async def _get_json(self, endpoint: str, params: dict[str, str | int] | None = None) -> object:
        if params:
            response = await self._session.get(endpoint, params=params)
        else:
            response = await self._session.get(endpoint)
        _ = response.raise_for_status()

        # response.json() returns Any, validated by the caller
        return cast(object, response.json())

    async def _get_dict(self, endpoint: str, params: dict[str, str | int] | None = None) -> dict[str, object]:
        data_raw = await self._get_json(endpoint, params)
        if not isinstance(data_raw, dict):
            msg = f"Invalid response format: expected dict, got {type(data_raw)}"
            raise ValueError(msg)
        return cast(dict[str, object], data_raw)

    async def _get_str_list(self, endpoint: str) -> list[str]:
        data_raw = await self._get_json(endpoint)
        if not isinstance(data_raw, list):
            msg = f"Invalid response format: expected list, got {type(data_raw)}"
            raise ValueError(msg)
        return [str(item) for item in cast(list[object], data_raw)]

    async def _post(self, endpoint: str, body: dict[str, object]) -> None:
        response = await self._session.post(endpoint, json=body)
        _ = response.raise_for_status()

    # ============================================================================
    # Prompt Submission
    # ============================================================================

    async def queue_prompt(
        self,
        workflow: Workflow,
        extra_data: JSONObject | None = None,
    ) -> QueuePromptResponse:
        """Submit a workflow for execution.

        The workflow is serialized at call time; mutating it afterwards does not
        affect the queued prompt.

        Args:
            workflow: Workflow to execute
            extra_data: Caller metadata echoed back in history

        Returns:
            Response with prompt_id and queue number

        Raises:
            EmptyWorkflowError / MissingNodeTypeError: If client-side validation fails
            RemoteRejectionError: If the server reports node errors
            httpx.HTTPStatusError: If request fails
        """
        workflow.validate_workflow()

        body: dict[str, object] = {"prompt": workflow.to_dict(), "client_id": self.client_id}
        if extra_data:
            body["extra_data"] = extra_data

        response = await self._session.post(ComfyClientConfig.ENDPOINT_PROMPT, json=body)

        # Validation failures come back as 400 with a structured body
        if response.status_code == 400:
            try:
                error_raw: object = response.json()  # type: ignore[misc]
            except ValueError:
                error_raw = None
            if isinstance(error_raw, dict):
                error_data = cast(dict[str, object], error_raw)
                node_errors = error_data.get("node_errors")
                raise RemoteRejectionError(
                    cast("JSONObject", node_errors) if isinstance(node_errors, dict) else {},
                    error_data.get("error"),
                )

        _ = response.raise_for_status()

        data_raw: object = response.json()  # type: ignore[misc]
        if not isinstance(data_raw, dict):
            msg = f"Invalid response format: expected dict, got {type(data_raw)}"
            raise ValueError(msg)

        result = QueuePromptResponse.model_validate(data_raw)
        if result.node_errors:
            raise RemoteRejectionError(result.node_errors)
        return result

    async def queue_prompt_from_file(
        self,
        path: Path | str,
        extra_data: JSONObject | None = None,
    ) -> QueuePromptResponse:
        """Load an API-format workflow file and submit it."""
        return await self.queue_prompt(load_workflow(path), extra_data)

    # ============================================================================
    # Queue Management
    # ============================================================================

    async def get_queue(self) -> QueueStatus:
        """Get running and pending queue slots.

        Raises:
            MalformedRecordError: If a slot is not a valid prompt tuple
            httpx.HTTPStatusError: If request fails
        """
        return decode_queue_status(await self._get_json(ComfyClientConfig.ENDPOINT_QUEUE))

    async def clear_queue(self) -> None:
        """Remove all pending prompts."""
        await self._post(ComfyClientConfig.ENDPOINT_QUEUE, {"clear": True})

    async def delete_from_queue(self, prompt_ids: list[str]) -> None:
        """Remove specific pending prompts."""
        await self._post(ComfyClientConfig.ENDPOINT_QUEUE, {"delete": prompt_ids})

    async def interrupt(self, prompt_id: str | None = None) -> None:
        """Interrupt execution (of one prompt, or whatever is running)."""
        body: dict[str, object] = {"prompt_id": prompt_id} if prompt_id else {}
        await self._post(ComfyClientConfig.ENDPOINT_INTERRUPT, body)

    # ============================================================================
    # History
    # ============================================================================

    async def get_history(
        self,
        prompt_id: str | None = None,
        max_items: int | None = None,
    ) -> dict[str, HistoryItem]:
        """Get execution history.

        Args:
            prompt_id: Single prompt to fetch (None = all history)
            max_items: Limit on entries returned when fetching all history

        Returns:
            Mapping prompt_id -> HistoryItem (empty if prompt_id is unknown or pending)

        Raises:
            MalformedRecordError: If an entry's prompt array is malformed
            httpx.HTTPStatusError: If request fails
        """
        if prompt_id:
            endpoint = ComfyClientConfig.ENDPOINT_HISTORY_ITEM.format(prompt_id=prompt_id)
            data = await self._get_json(endpoint)
        else:
            params: dict[str, str | int] | None = {"max_items": max_items} if max_items else None
            data = await self._get_json(ComfyClientConfig.ENDPOINT_HISTORY, params)
        return decode_history(data)

    async def clear_history(self) -> None:
        await self._post(ComfyClientConfig.ENDPOINT_HISTORY, {"clear": True})

    async def delete_history(self, prompt_ids: list[str]) -> None:
        await self._post(ComfyClientConfig.ENDPOINT_HISTORY, {"delete": prompt_ids})

    # ============================================================================
    # Server Info
    # ============================================================================

    async def get_system_stats(self) -> SystemStats:
        data = await self._get_dict(ComfyClientConfig.ENDPOINT_SYSTEM_STATS)
        return SystemStats.model_validate(data)

    async def get_object_info(self, node_class: str | None = None) -> dict[str, NodeClassInfo]:
        """Get node class descriptions (all classes, or one)."""
        if node_class:
            endpoint = ComfyClientConfig.ENDPOINT_OBJECT_INFO_ITEM.format(node_class=node_class)
        else:
            endpoint = ComfyClientConfig.ENDPOINT_OBJECT_INFO
        data = await self._get_dict(endpoint)
        return _OBJECT_INFO_ADAPTER.validate_python(data)

    async def get_embeddings(self) -> list[str]:
        return await self._get_str_list(ComfyClientConfig.ENDPOINT_EMBEDDINGS)

    async def get_models(self, folder: str | None = None) -> list[str]:
        """List model folders, or the models inside one folder."""
        if folder:
            return await self._get_str_list(ComfyClientConfig.ENDPOINT_MODELS_FOLDER.format(folder=folder))
        return await self._get_str_list(ComfyClientConfig.ENDPOINT_MODELS)

    async def free_memory(self, unload_models: bool = False, free_memory: bool = False) -> None:
        await self._post(
            ComfyClientConfig.ENDPOINT_FREE,
            {"unload_models": unload_models, "free_memory": free_memory},
        )

    async def get_features(self) -> JSONObject:
        data = await self._get_dict(ComfyClientConfig.ENDPOINT_FEATURES)
        return cast("JSONObject", data)

    # ============================================================================
    # Images
    # ============================================================================

    async def upload_image(
        self,
        path: Path,
        subfolder: str | None = None,
        folder_type: str = ComfyClientConfig.DEFAULT_UPLOAD_TYPE,
        overwrite: bool = False,
    ) -> UploadImageResponse:
        """Upload an image file for use as a workflow input.

        Raises:
            FileNotFoundError: If path doesn't exist
            httpx.HTTPStatusError: If request fails
        """
        if not path.exists():
            msg = f"File not found: {path}"
            raise FileNotFoundError(msg)
        return await self.upload_image_bytes(path.read_bytes(), path.name, subfolder, folder_type, overwrite)

    async def upload_image_bytes(
        self,
        data: bytes,
        filename: str,
        subfolder: str | None = None,
        folder_type: str = ComfyClientConfig.DEFAULT_UPLOAD_TYPE,
        overwrite: bool = False,
    ) -> UploadImageResponse:
        response = await self._session.post(
            ComfyClientConfig.ENDPOINT_UPLOAD_IMAGE,
            files=HttpUtils.image_part(filename, data),
            data=HttpUtils.build_upload_form(subfolder, folder_type, overwrite),
        )
        _ = response.raise_for_status()
        return UploadImageResponse.model_validate(response.json())

    async def get_image(self, filename: str, subfolder: str = "", folder_type: str = "output") -> bytes:
        """Download raw image bytes."""
        response = await self._session.get(
            ComfyClientConfig.ENDPOINT_VIEW,
            params=HttpUtils.view_params(filename, subfolder, folder_type),
        )
        _ = response.raise_for_status()
        return response.content

    async def save_image(self, image: ImageInfo, dest: Path) -> Path:
        """Download an image to dest, creating parent directories."""
        data = await self.get_image(image.filename, image.subfolder, image.type)
        dest.parent.mkdir(parents=True, exist_ok=True)
        _ = dest.write_bytes(data)
        return dest

    async def save_images(self, images: list[ImageInfo], dest_dir: Path) -> list[Path]:
        """Download images into dest_dir under their server file names."""
        return [await self.save_image(image, dest_dir / image.filename) for image in images]

    # ============================================================================
    # Progress Monitoring - Event Stream (PRIMARY WORKFLOW)
    # ============================================================================

    @property
    def events(self) -> EventStream | None:
        return self._events

    async def connect_events(self) -> EventStream:
        """Connect the event stream for this client id (no-op if already connected)."""
        if self._events is None or self._events.closed:
            self._events = EventStream(base_url=self.base_url, client_id=self.client_id)
            await self._events.connect()
        return self._events

    async def track(
        self,
        prompt_id: str,
        on_update: Callable[[ProgressState], None] | None = None,
    ) -> ProgressTracker:
        """Start tracking a prompt; untrack via ``client.events.untrack(tracker)``."""
        events = await self.connect_events()
        return events.track(prompt_id, on_update=on_update)

    async def wait_for_completion(
        self,
        prompt_id: str,
        timeout: float | None = ComfyClientConfig.DEFAULT_WAIT_TIMEOUT,
        cancel: asyncio.Event | None = None,
        on_update: Callable[[ProgressState], None] | None = None,
        check_history: bool = ComfyClientConfig.HISTORY_CHECK_ON_WAIT,
    ) -> ExecutionResult:
        """Wait for a prompt to finish and collect its outputs from history.

        Args:
            prompt_id: Prompt to wait for
            timeout: Max wait time in seconds (None = no timeout)
            cancel: Event that aborts the wait when set
            on_update: Called with a progress snapshot on every state change
            check_history: Also consult history, for prompts that finished before tracking began

        Returns:
            ExecutionResult with all images, node outputs and status

        Raises:
            ExecutionError: If a node failed
            StreamClosedError: If the event stream ended first
            WaitCancelledError: If cancel was set first
            WaitTimeoutError: If timeout expired first
        """
        from loguru import logger

        events = await self.connect_events()

        # Track FIRST, then check history, so no completion can slip between the two
        tracker = events.track(prompt_id, on_update=on_update)
        item: HistoryItem | None = None
        try:
            if check_history:
                item = (await self.get_history(prompt_id)).get(prompt_id)
                if item is not None and tracker.apply_history(item):
                    logger.debug(f"Prompt {prompt_id} already finished according to history")

            state = await tracker.wait(timeout=timeout, cancel=cancel)
        finally:
            events.untrack(tracker)

        logger.debug(f"Prompt {prompt_id} completed in {state.elapsed():.2f}s ({state.completed_nodes} nodes)")

        # Artifacts are only reported by history, never by the terminal event
        if item is None or not item.status.completed:
            item = (await self.get_history(prompt_id)).get(prompt_id)

        end_time = state.end_time if state.end_time is not None else time.time()
        if item is None:
            logger.warning(f"Prompt {prompt_id} completed but has no history entry")
            return ExecutionResult(prompt_id=prompt_id, start_time=state.start_time, end_time=end_time)

        # An execution_error sent before tracking began only shows up in history
        error = history_error(prompt_id, item)
        if error is not None:
            raise ExecutionError(error)

        return ExecutionResult(
            prompt_id=prompt_id,
            images=item.images,
            outputs=item.outputs,
            status=item.status,
            start_time=state.start_time,
            end_time=end_time,
        )

    async def execute(
        self,
        workflow: Workflow,
        extra_data: JSONObject | None = None,
        timeout: float | None = ComfyClientConfig.DEFAULT_WAIT_TIMEOUT,
        cancel: asyncio.Event | None = None,
        on_update: Callable[[ProgressState], None] | None = None,
    ) -> ExecutionResult:
        """Submit a workflow and wait for its result.

        The event stream is connected before submission so no event is missed.
        """
        _ = await self.connect_events()
        response = await self.queue_prompt(workflow, extra_data)
        return await self.wait_for_completion(
            response.prompt_id, timeout=timeout, cancel=cancel, on_update=on_update
        )

    # ============================================================================
    # Cleanup
    # ============================================================================

    async def close(self) -> None:
        """Close client connections and cleanup resources."""
        await self._session.aclose()
        if self._events is not None:
            await self._events.close()

    async def __aenter__(self) -> ComfyClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.close()
