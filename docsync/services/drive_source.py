"""Google Drive document source: folder walks, change feed and downloads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from docsync.config.logger import app_logger
from docsync.exceptions import SourceError
from docsync.models.document import Change, ChangeKind, ChangeSet, Document, FolderInfo
from docsync.services.drive_client import FOLDER_MIME_TYPE, DriveAPIClient
from docsync.services.rate_limiter import RateLimiter
from docsync.utils.retry import DEFAULT_RETRY, RetryConfig, with_retry


class DriveSource:
    """Lists and watches the supported files below one Drive folder.

    Paths are relative to the root folder and exclude its name. Files with
    several parents take the path of the first parent whose chain actually
    reaches the root. Resolved paths are cached by document id for as long as
    the file keeps its name and parents.
    """

    def __init__(
        self,
        api: DriveAPIClient,
        supported_extensions: Sequence[str] = (".md", ".markdown", ".txt"),
        supported_mime_types: Sequence[str] = ("text/markdown", "text/plain"),
        max_parent_depth: int = 20,
        rate_limiter: Optional[RateLimiter] = None,
        retry: RetryConfig = DEFAULT_RETRY,
    ) -> None:
        self.api = api
        self.supported_extensions = tuple(ext.lower() for ext in supported_extensions)
        self.supported_mime_types = frozenset(supported_mime_types)
        self.max_parent_depth = max_parent_depth
        self.rate_limiter = rate_limiter
        self.retry = retry
        self._mime_types: Dict[str, str] = {}
        # document id -> ((name, parent ids), path) while the placement is unchanged
        self._paths: Dict[str, Tuple[Tuple[str, Tuple[str, ...]], str]] = {}

    async def _call(self, fn):
        async def attempt():
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_if_needed()
            return await fn()

        return await with_retry(attempt, self.retry)

    def is_supported(self, name: str, mime_type: Optional[str]) -> bool:
        if mime_type and mime_type in self.supported_mime_types:
            return True
        return name.lower().endswith(self.supported_extensions)

    def _document(self, item: Dict[str, Any], path: str) -> Document:
        document = Document(
            id=item["id"],
            name=item["name"],
            mime_type=item.get("mimeType") or "text/markdown",
            modified_time=item.get("modifiedTime") or "",
            path=path,
            parent_ids=list(item.get("parents") or []),
        )
        self._mime_types[document.id] = document.mime_type
        return document

    # ------------------------------------------------------------------
    # Full listing
    # ------------------------------------------------------------------

    async def list_all(self, root_id: str) -> List[Document]:
        """Every supported file below ``root_id``, walking sub-folders recursively."""
        documents: List[Document] = []
        folder_paths: Dict[str, str] = {root_id: ""}
        try:
            await self._scan_folder(root_id, documents, folder_paths)
        except Exception as e:
            raise SourceError(
                "Failed to list files",
                {"root_folder_id": root_id, "error": str(e)},
            ) from e
        app_logger.info(f"Found {len(documents)} supported files under folder {root_id}")
        return documents

    async def _scan_folder(self, folder_id: str, documents: List[Document], folder_paths: Dict[str, str]) -> None:
        subfolders: List[str] = []
        page_token: Optional[str] = None
        while True:
            response = await self._call(lambda: self.api.list_files(folder_id, page_token))
            parent_path = folder_paths.get(folder_id, "")

            for item in response.get("files") or []:
                if not item.get("id") or not item.get("name"):
                    continue
                current_path = f"{parent_path}/{item['name']}" if parent_path else item["name"]
                if item.get("mimeType") == FOLDER_MIME_TYPE:
                    if item["id"] not in folder_paths:
                        folder_paths[item["id"]] = current_path
                        subfolders.append(item["id"])
                elif self.is_supported(item["name"], item.get("mimeType")):
                    documents.append(self._document(item, current_path))
                    self._paths[item["id"]] = ((item["name"], tuple(item.get("parents") or [])), current_path)

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        for subfolder_id in subfolders:
            try:
                await self._scan_folder(subfolder_id, documents, folder_paths)
            except Exception as e:
                app_logger.error(f"Skipping folder {subfolder_id} ({folder_paths.get(subfolder_id)}): {e}")

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    async def get_cursor(self) -> str:
        try:
            return await self._call(self.api.get_start_page_token)
        except Exception as e:
            raise SourceError("Failed to get start page token", {"error": str(e)}) from e

    async def fetch_changes(self, cursor: str, root_id: str) -> ChangeSet:
        """Changes since ``cursor`` that concern supported files in the tree."""
        changes: List[Change] = []
        folders: Dict[str, FolderInfo] = {}
        page_token = cursor

        try:
            while page_token:
                response = await self._call(lambda: self.api.list_changes(page_token))

                for item in response.get("changes") or []:
                    change = await self._to_change(item, root_id, folders)
                    if change is not None:
                        changes.append(change)

                new_cursor = response.get("newStartPageToken")
                if new_cursor:
                    app_logger.info(f"Fetched {len(changes)} relevant changes")
                    return ChangeSet(changes=changes, new_cursor=new_cursor)
                page_token = response.get("nextPageToken")
        except Exception as e:
            raise SourceError(
                "Failed to fetch changes",
                {"cursor": cursor, "error": str(e)},
            ) from e

        raise SourceError("No newStartPageToken received", {"cursor": cursor})

    async def _to_change(self, item: Dict[str, Any], root_id: str, folders: Dict[str, FolderInfo]) -> Optional[Change]:
        file_id = item.get("fileId")
        if not file_id:
            return None

        file = item.get("file") or {}
        if item.get("removed") or file.get("trashed"):
            return Change(document_id=file_id, kind=ChangeKind.DELETED)

        name = file.get("name")
        if not name or file.get("mimeType") == FOLDER_MIME_TYPE:
            return None
        if not self.is_supported(name, file.get("mimeType")):
            return None

        try:
            path = await self._resolve_path(file_id, name, file.get("parents") or [], root_id, folders)
        except Exception as e:
            app_logger.warning(f"Could not resolve ancestry of {name} ({file_id}), skipping: {e}")
            return None
        if path is None:
            return None

        created = file.get("createdTime")
        kind = ChangeKind.ADDED if created and created == file.get("modifiedTime") else ChangeKind.MODIFIED
        return Change(
            document_id=file_id,
            kind=kind,
            document=self._document({**file, "id": file_id}, path),
        )

    async def _folder_info(self, folder_id: str, folders: Dict[str, FolderInfo]) -> FolderInfo:
        info = folders.get(folder_id)
        if info is None:
            data = await self._call(lambda: self.api.get_file(folder_id))
            info = FolderInfo(id=folder_id, name=data.get("name") or "", parent_ids=list(data.get("parents") or []))
            folders[folder_id] = info
        return info

    async def _chain_to_root(
        self,
        folder_id: str,
        root_id: str,
        folders: Dict[str, FolderInfo],
        shallowest: Dict[str, int],
        depth: int,
    ) -> Optional[List[str]]:
        """Folder names from ``folder_id`` up to, not including, the root.

        ``None`` when no parent chain reaches the root within the depth limit.
        A folder is explored again only when reached at a smaller depth than
        before, which also ends cycles.
        """
        if folder_id == root_id:
            return []
        if depth >= self.max_parent_depth or shallowest.get(folder_id, self.max_parent_depth) <= depth:
            return None
        shallowest[folder_id] = depth

        info = await self._folder_info(folder_id, folders)
        for parent_id in info.parent_ids:
            chain = await self._chain_to_root(parent_id, root_id, folders, shallowest, depth + 1)
            if chain is not None:
                return [info.name, *chain]
        return None

    async def _resolve_path(
        self,
        document_id: str,
        name: str,
        parent_ids: List[str],
        root_id: str,
        folders: Dict[str, FolderInfo],
    ) -> Optional[str]:
        cached = self._paths.get(document_id)
        if cached is not None and cached[0] == (name, tuple(parent_ids)):
            return cached[1]

        shallowest: Dict[str, int] = {}
        for parent_id in parent_ids:
            chain = await self._chain_to_root(parent_id, root_id, folders, shallowest, 0)
            if chain is not None:
                path = "/".join([*reversed(chain), name])
                self._paths[document_id] = ((name, tuple(parent_ids)), path)
                return path
        return None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def download(self, document_id: str) -> str:
        mime_type = self._mime_types.get(document_id)
        try:
            return await self._call(lambda: self.api.download(document_id, mime_type))
        except Exception as e:
            raise SourceError(
                "Failed to download file content",
                {"document_id": document_id, "error": str(e)},
            ) from e
