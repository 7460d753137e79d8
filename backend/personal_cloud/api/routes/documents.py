import os
from typing import BinaryIO, Iterator, List, Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from personal_cloud.api.deps import get_current_owner_id, get_document_service
from personal_cloud.core.config import get_settings
from personal_cloud.models.document import Document
from personal_cloud.schemas.document import (
    DeleteResult,
    DocumentOut,
    FolderListOut,
    ImageDetailsOut,
    MoveRequest,
    RenameRequest,
    StorageUsageOut,
)
from personal_cloud.services.catalog import ANY_FOLDER
from personal_cloud.services.documents import DocumentService

router = APIRouter(prefix="/documents", tags=["documents"])

# Types a browser may render inline; everything else is forced to download.
_INLINE_PREFIXES = ("image/", "audio/", "video/", "text/plain", "application/pdf")
# Scriptable image formats still download as attachments.
_NEVER_INLINE = ("image/svg+xml",)
_STREAM_CHUNK = 64 * 1024


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return int(upload.size)
    fh = upload.file
    fh.seek(0, os.SEEK_END)
    size = fh.tell()
    fh.seek(0)
    return size


def _iter_and_close(fh: BinaryIO) -> Iterator[bytes]:
    try:
        while True:
            chunk = fh.read(_STREAM_CHUNK)
            if not chunk:
                break
            yield chunk
    finally:
        fh.close()


def _content_disposition(kind: str, file_name: str) -> str:
    ascii_name = file_name.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    return f"{kind}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name)}"


def _stream(document: Document, fh: BinaryIO, inline: bool) -> StreamingResponse:
    media_type = document.content_type or "application/octet-stream"
    disposition = "attachment"
    lowered = media_type.lower()
    if inline and lowered.startswith(_INLINE_PREFIXES) and not lowered.startswith(_NEVER_INLINE):
        disposition = "inline"
    elif inline:
        media_type = "application/octet-stream"
    return StreamingResponse(
        _iter_and_close(fh),
        media_type=media_type,
        headers={
            "Content-Disposition": _content_disposition(disposition, document.file_name),
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("", response_model=List[DocumentOut])
def list_documents(
    kind: Optional[Literal["image", "audio"]] = Query(default=None),
    folder: Optional[str] = Query(default=None, description="Folder path; empty string lists the root folder"),
    search: Optional[str] = Query(default=None, max_length=200),
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentOut]:
    docs = service.list_documents(
        owner_id,
        kind=kind,
        folder=ANY_FOLDER if folder is None else folder,
        search=search,
    )
    return [DocumentOut.model_validate(d) for d in docs]


@router.post("", response_model=DocumentOut)
def upload_document(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> DocumentOut:
    settings = get_settings()
    size = _upload_size(file)
    if not file.filename or size == 0:
        raise HTTPException(status_code=400, detail="No file selected.")
    if size > settings.upload_max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large (max {settings.upload_max_bytes} bytes).")

    doc = service.add_document(owner_id, file.filename, file.content_type, size, file.file)
    return DocumentOut.model_validate(doc)


@router.get("/gallery", response_model=List[DocumentOut])
def gallery(
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentOut]:
    return [DocumentOut.model_validate(d) for d in service.list_images(owner_id)]


@router.get("/music", response_model=List[DocumentOut])
def music(
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentOut]:
    return [DocumentOut.model_validate(d) for d in service.list_audio(owner_id)]


@router.get("/folders", response_model=FolderListOut)
def list_folders(
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> FolderListOut:
    return FolderListOut(folders=service.list_folders(owner_id))


@router.get("/usage", response_model=StorageUsageOut)
def storage_usage(
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> StorageUsageOut:
    usage = service.storage_usage(owner_id)
    return StorageUsageOut(
        used_bytes=usage.used_bytes,
        max_bytes=usage.max_bytes,
        percentage_used=usage.percentage_used,
        used_formatted=usage.used_formatted,
        max_formatted=usage.max_formatted,
        is_premium=usage.is_premium,
    )


@router.get("/latest", response_model=Optional[DocumentOut])
def latest_document(
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> Optional[DocumentOut]:
    doc = service.latest_document(owner_id)
    return DocumentOut.model_validate(doc) if doc else None


@router.get("/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: int,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> DocumentOut:
    return DocumentOut.model_validate(service.get_document(document_id, owner_id))


@router.get("/{document_id}/image", response_model=ImageDetailsOut)
def image_details(
    document_id: int,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> ImageDetailsOut:
    doc = service.get_document(document_id, owner_id)
    if not doc.is_image:
        raise HTTPException(status_code=404, detail="Document not found")
    base = DocumentOut.model_validate(doc).model_dump(exclude={"file_size_formatted"})
    return ImageDetailsOut(**base, download_url=f"/documents/{doc.id}/download")


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> StreamingResponse:
    doc, fh = service.open_document(document_id, owner_id)
    return _stream(doc, fh, inline=False)


@router.get("/{document_id}/preview")
def preview_document(
    document_id: int,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> StreamingResponse:
    doc, fh = service.open_document(document_id, owner_id)
    return _stream(doc, fh, inline=True)


@router.patch("/{document_id}/name", response_model=DocumentOut)
def rename_document(
    document_id: int,
    payload: RenameRequest,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> DocumentOut:
    return DocumentOut.model_validate(service.rename_document(document_id, owner_id, payload.new_name))


@router.patch("/{document_id}/folder", response_model=DocumentOut)
def move_document(
    document_id: int,
    payload: MoveRequest,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> DocumentOut:
    return DocumentOut.model_validate(service.move_document(document_id, owner_id, payload.folder_path))


@router.delete("/{document_id}", response_model=DeleteResult)
def delete_document(
    document_id: int,
    owner_id: str = Depends(get_current_owner_id),
    service: DocumentService = Depends(get_document_service),
) -> DeleteResult:
    deleted = service.delete_document(document_id, owner_id)
    return DeleteResult(ok=True, deleted=deleted)
