from __future__ import annotations

from pathlib import Path


class HttpUtils:
    @staticmethod
    def _guess_mime_type(filename: str) -> str:
        """Guess MIME type from file extension.

        Args:
            filename: File name or path

        Returns:
            MIME type string
        """
        import mimetypes

        mime_type, _ = mimetypes.guess_type(filename)
        return mime_type or "application/octet-stream"

    @staticmethod
    def image_part(filename: str, data: bytes) -> dict[str, tuple[str, bytes, str]]:
        """Multipart ``image`` field for the upload endpoint."""
        return {"image": (Path(filename).name, data, HttpUtils._guess_mime_type(filename))}

    @staticmethod
    def build_upload_form(
        subfolder: str | None,
        folder_type: str,
        overwrite: bool,
    ) -> dict[str, str]:
        form_data: dict[str, str] = {"type": folder_type}
        if subfolder:
            form_data["subfolder"] = subfolder
        if overwrite:
            form_data["overwrite"] = "true"
        return form_data

    @staticmethod
    def view_params(filename: str, subfolder: str, folder_type: str) -> dict[str, str]:
        return {"filename": filename, "subfolder": subfolder, "type": folder_type}
