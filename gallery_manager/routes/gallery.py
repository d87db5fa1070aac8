"""
Gallery routes: upload, list, edit, reorder and delete images of one gallery,
plus temporary ticket lookups and admin maintenance endpoints.

``gallery_id`` in the path is either an owner's primary key or a temporary id
rendered from the configured template; which one is decided by matching it
against the template for the request's user/session.
"""
from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional
import asyncio
import logging
import tempfile

from gallery_manager.config import settings
from gallery_manager.database import get_db
from gallery_manager.exceptions import GalleryStorageError, ImageNotFoundError, TransformError
from gallery_manager.schemas import (
    ArrangeRequest,
    BulkDeleteRequest,
    GalleryImageResponse,
    GalleryResponse,
    ImagesDataRequest,
    OrphanReapResponse,
    RegenerateRequest,
    RegenerateResponse,
    TicketResponse,
    TicketRotateRequest,
)
from gallery_manager.services.gallery import Gallery, GalleryConfig, reap_orphans, regenerate_all
from gallery_manager.services.identity import OwnerRef, RequestContext
from gallery_manager.services import tickets
from gallery_manager.utils.auth import require_admin
from gallery_manager.utils.image_converter import get_image_info

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gallery", tags=["gallery"])

_configs: Dict[str, GalleryConfig] = {}


def get_request_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_session_id: Optional[str] = Header(None, alias="X-Session-Id"),
    x_csrf_token: Optional[str] = Header(None, alias="X-CSRF-Token"),
) -> RequestContext:
    """Request identity supplied by the authentication layer in front of this service."""
    return RequestContext(user_id=x_user_id, session_id=x_session_id, csrf_token=x_csrf_token)


def get_gallery_config(type: str) -> GalleryConfig:
    """
    Gallery configuration for an owner type listed in GALLERY_TYPES.

    Raises:
        HTTPException: 404 if the type is not configured
    """
    if type not in settings.GALLERY_TYPES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Unknown gallery type", "detail": f"Gallery type '{type}' is not configured"}
        )
    if type not in _configs:
        _configs[type] = GalleryConfig.from_settings(type)
    return _configs[type]


def _validate_gallery_id(gallery_id: str) -> str:
    """
    Reject ids that cannot name a single directory below the gallery root.

    Raises:
        HTTPException: 400 for ``.``, ``..`` or ids containing a path separator or NUL
    """
    if gallery_id in ("", ".", "..") or any(char in gallery_id for char in ("/", "\\", "\0")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid gallery ID", "detail": f"'{gallery_id}' is not a valid gallery ID"}
        )
    return gallery_id


def get_gallery(
    gallery_id: str,
    config: GalleryConfig = Depends(get_gallery_config),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> Gallery:
    _validate_gallery_id(gallery_id)
    gallery = Gallery(OwnerRef(), config, db, context)
    if not gallery.set_temporary_id(gallery_id):
        gallery.owner.primary_key = gallery_id
    return gallery


def _image_response(gallery: Gallery, image) -> GalleryImageResponse:
    return GalleryImageResponse(
        id=image.id,
        name=image.name,
        description=image.description,
        rank=image.rank,
        urls=gallery.urls(image.id),
    )


@router.get("/{type}/{gallery_id}/images", response_model=GalleryResponse)
async def list_gallery_images(gallery: Gallery = Depends(get_gallery)):
    """
    List images of a gallery ordered by rank, with URLs of every version.
    """
    images = await gallery.images()
    logger.info(f"Retrieved {len(images)} images for gallery {gallery.gallery_id} ({gallery.type})")
    return GalleryResponse(
        type=gallery.type,
        gallery_id=gallery.gallery_id,
        temporary=gallery.identity.is_temporary(),
        has_name=gallery.config.has_name,
        has_description=gallery.config.has_description,
        images=[_image_response(gallery, image) for image in images],
    )


@router.post("/{type}/{gallery_id}/images", response_model=GalleryImageResponse, status_code=status.HTTP_201_CREATED)
async def upload_gallery_image(
    file: UploadFile = File(...),
    gallery: Gallery = Depends(get_gallery),
    db: AsyncSession = Depends(get_db),
):
    """
    Upload one image into a gallery.

    While the gallery is temporary a ticket is recorded for the request's
    CSRF token, so the form can later recover which images it uploaded.

    Raises:
        HTTPException: 400 if the file is not an image, 500 if storing fails
    """
    content = await file.read()
    if not content or get_image_info(content) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid file type", "detail": f"File '{file.filename}' is not a valid image file"}
        )

    upload = await asyncio.to_thread(_spool_upload, content)
    try:
        image = await gallery.add_image(upload)
        context = gallery.identity.context
        if gallery.identity.is_temporary() and context.csrf_token:
            await tickets.record_ticket(db, image.id, gallery.identity.temporary_index, context)
        await db.commit()
        return _image_response(gallery, image)

    except TransformError as e:
        await db.rollback()
        logger.warning(f"Upload of {file.filename} rejected: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "Image could not be processed", "detail": str(e)}
        )
    except GalleryStorageError as e:
        await db.rollback()
        logger.error(f"Storage error while uploading {file.filename}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to store image", "detail": str(e)}
        )
    finally:
        await asyncio.to_thread(upload.unlink, True)


def _spool_upload(content: bytes) -> Path:
    with tempfile.NamedTemporaryFile(prefix="gallery-upload-", delete=False) as handle:
        handle.write(content)
    return Path(handle.name)


@router.put("/{type}/{gallery_id}/images", response_model=list[GalleryImageResponse])
async def update_gallery_images_data(
    request: ImagesDataRequest,
    gallery: Gallery = Depends(get_gallery),
    db: AsyncSession = Depends(get_db),
):
    """Change names and descriptions of images in a gallery."""
    data = {image_id: update.model_dump() for image_id, update in request.images.items()}
    updated = await gallery.update_images_data(data)
    await db.commit()
    logger.info(f"Updated data of {len(updated)} images in gallery {gallery.gallery_id}")
    return [_image_response(gallery, image) for image in updated]


@router.delete("/{type}/{gallery_id}/images")
async def delete_gallery_images(
    request: BulkDeleteRequest,
    gallery: Gallery = Depends(get_gallery),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete images from a gallery (rows and all version files).

    Raises:
        HTTPException: 400 if no IDs provided, 404 if none of them exist
    """
    if not request.image_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "No image IDs provided", "detail": "At least one image ID is required"}
        )

    deleted_ids = await gallery.delete_images(request.image_ids)
    if not deleted_ids:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No images found", "detail": "None of the provided image IDs were found"}
        )
    await db.commit()

    return {
        "message": f"Deleted {len(deleted_ids)} image(s) successfully",
        "deleted_ids": deleted_ids,
    }


@router.put("/{type}/{gallery_id}/order")
async def arrange_gallery_images(
    request: ArrangeRequest,
    gallery: Gallery = Depends(get_gallery),
    db: AsyncSession = Depends(get_db),
):
    """Reorder images: the order of keys in ``order`` becomes the display order."""
    ranks = await gallery.arrange(request.order)
    await db.commit()
    return {"ranks": ranks}


@router.get("/tickets/{temporary_index}", response_model=TicketResponse)
async def get_ticket_images(
    temporary_index: str,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Image ids uploaded under ``temporary_index`` with this request's token."""
    image_ids = await tickets.image_ids_for_ticket(db, temporary_index, context)
    return TicketResponse(temporary_index=temporary_index, image_ids=image_ids)


@router.put("/tickets/{temporary_index}/rotate")
async def rotate_ticket_token(
    temporary_index: str,
    request: TicketRotateRequest,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Move tickets from the request's CSRF token to the next one."""
    count = await tickets.rotate_tickets(db, temporary_index, context, request.new_token)
    await db.commit()
    return {"rotated": count}


@router.post("/{type}/regenerate", response_model=RegenerateResponse)
async def regenerate_gallery_versions(
    request: RegenerateRequest,
    config: GalleryConfig = Depends(get_gallery_config),
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin),
):
    """
    Regenerate versions of every image of a type after a configuration change.
    Reports aggregate counts instead of per-image errors.
    """
    result = await regenerate_all(
        config, db, old_extension=request.old_extension, only_versions=request.only_versions
    )
    return RegenerateResponse(succeeded=result.succeeded, failed=result.failed)


@router.delete("/{type}/orphans", response_model=OrphanReapResponse)
async def delete_orphan_galleries(
    min_age_hours: Optional[float] = settings.ORPHAN_MIN_AGE_HOURS,
    config: GalleryConfig = Depends(get_gallery_config),
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin),
):
    """
    Delete temporary galleries that were never promoted.
    Only galleries whose newest image is older than ``min_age_hours`` are removed.
    """
    older_than = timedelta(hours=min_age_hours) if min_age_hours is not None else None
    reaped = await reap_orphans(config, db, older_than=older_than)
    await db.commit()
    logger.info(f"Reaped {len(reaped)} orphan galleries of type {config.type}")
    return OrphanReapResponse(reaped=reaped, count=len(reaped))


def translate_gallery_errors(exc: Exception) -> HTTPException:
    """Map service exceptions raised outside the handlers above to HTTP errors."""
    if isinstance(exc, ImageNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Image not found", "detail": str(exc)}
        )
    if isinstance(exc, TransformError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "Image could not be processed", "detail": str(exc)}
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "Gallery operation failed", "detail": str(exc)}
    )
