"""Media router for upload and streaming endpoints.

Errors raised here are MediaServiceError subclasses; the application's
exception handler turns them into plain-text code responses.
"""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import FileResponse, PlainTextResponse

from vodstream.modules.media.schemas import AssetStatusResponse
from vodstream.modules.media.service import StreamingService, UploadService

TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

router = APIRouter(tags=["media"])


def get_upload_service(request: Request) -> UploadService:
    """Dependency for getting upload service."""
    return request.app.state.upload_service


def get_streaming_service(request: Request) -> StreamingService:
    """Dependency for getting streaming service."""
    return request.app.state.streaming_service


def get_max_upload_bytes(request: Request) -> int:
    return request.app.state.settings.MAX_UPLOAD_BYTES


@router.get("/", include_in_schema=False)
async def index_page() -> FileResponse:
    return FileResponse(TEMPLATES_DIR / "index.html", media_type="text/html")


@router.get("/upload", include_in_schema=False)
async def upload_page() -> FileResponse:
    return FileResponse(TEMPLATES_DIR / "upload.html", media_type="text/html")


@router.post(
    "/upload",
    response_class=PlainTextResponse,
    summary="Upload a video",
    description="Upload an MP4 file in the multipart field 'uploadFile' and transcode it to HLS.",
)
async def upload_video(
    upload_file: Optional[UploadFile] = File(None, alias="uploadFile"),
    service: UploadService = Depends(get_upload_service),
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> PlainTextResponse:
    """Accept an upload and transcode it.

    Returns ``SUCCESS, id: <id>`` once the asset is streamable, or
    ``202 PROCESSING, id: <id>`` when transcoding continues in the
    background.
    """
    data = None
    filename = None
    if upload_file is not None:
        filename = upload_file.filename
        # One byte past the limit is enough to reject oversize uploads
        data = await upload_file.read(max_upload_bytes + 1)
        await upload_file.close()

    asset = await service.handle_upload(filename, data)
    if asset.is_ready:
        return PlainTextResponse(f"SUCCESS, id: {asset.id}")
    return PlainTextResponse(f"PROCESSING, id: {asset.id}", status_code=status.HTTP_202_ACCEPTED)


@router.get("/media/{asset_id}/status", response_model=AssetStatusResponse)
async def get_asset_status(
    asset_id: str,
    service: StreamingService = Depends(get_streaming_service),
) -> AssetStatusResponse:
    asset = service.get_status(asset_id)
    return AssetStatusResponse.model_validate(asset)


@router.get("/media/{asset_id}/stream/{resource_name}")
async def stream_resource(
    asset_id: str,
    resource_name: str,
    service: StreamingService = Depends(get_streaming_service),
) -> FileResponse:
    """Serve the HLS manifest (``index.m3u8``) or a segment (``index<N>.ts``)."""
    path, media_type = service.resolve(asset_id, resource_name)
    return FileResponse(path, media_type=media_type)
