from videoproxy.schemas.generation import (
    ErrorResponse,
    GenerationEntryRead,
    HistoryResponse,
    ReferencesResponse,
    RemoteDownloadRequest,
    RemoteDownloadResponse,
    RemoteListRequest,
    RemoteListResponse,
    RemoteVideoRead,
    SavedReferenceRead,
)

__all__ = [
    "ErrorResponse",
    "GenerationEntryRead",
    "HistoryResponse",
    "ReferencesResponse",
    "RemoteDownloadRequest",
    "RemoteDownloadResponse",
    "RemoteListRequest",
    "RemoteListResponse",
    "RemoteVideoRead",
    "SavedReferenceRead",
]
