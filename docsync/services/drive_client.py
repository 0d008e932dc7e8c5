"""Thin async client for the Google Drive v3 REST API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from docsync.config.logger import app_logger

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"

FILE_FIELDS = "id, name, mimeType, createdTime, modifiedTime, parents, trashed"
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS})"
CHANGE_FIELDS = f"nextPageToken, newStartPageToken, changes(fileId, removed, file({FILE_FIELDS}))"


class DriveAPIClient:
    """Bearer-token Drive v3 client.

    Methods return the decoded JSON bodies unchanged. Non-2xx responses raise
    ``httpx.HTTPStatusError`` so callers can retry them.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://www.googleapis.com/drive/v3",
        page_size: int = 100,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.page_size = page_size
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=60.0,
            follow_redirects=True,
        )

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        response = await self._http.get(path, params=params)
        response.raise_for_status()
        return response

    async def list_files(self, folder_id: str, page_token: Optional[str] = None) -> Dict[str, Any]:
        """One page of the non-trashed children of ``folder_id``."""
        params: Dict[str, Any] = {
            "q": f"'{folder_id}' in parents and trashed=false",
            "fields": LIST_FIELDS,
            "pageSize": self.page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        return (await self._get("/files", params)).json()

    async def get_file(self, file_id: str) -> Dict[str, Any]:
        return (await self._get(f"/files/{file_id}", {"fields": FILE_FIELDS})).json()

    async def list_changes(self, page_token: str) -> Dict[str, Any]:
        params = {"pageToken": page_token, "fields": CHANGE_FIELDS, "pageSize": self.page_size}
        return (await self._get("/changes", params)).json()

    async def get_start_page_token(self) -> str:
        data = (await self._get("/changes/startPageToken")).json()
        token = data.get("startPageToken")
        if not token:
            raise ValueError("Drive returned no startPageToken")
        return token

    async def download(self, file_id: str, mime_type: Optional[str] = None) -> str:
        """File content as UTF-8 text. Google Docs are exported as plain text."""
        if mime_type == GOOGLE_DOC_MIME_TYPE:
            response = await self._get(f"/files/{file_id}/export", {"mimeType": "text/plain"})
        else:
            response = await self._get(f"/files/{file_id}", {"alt": "media"})
        return response.content.decode("utf-8", errors="replace")

    async def aclose(self) -> None:
        await self._http.aclose()
        app_logger.info("Drive HTTP client closed")
