# familytree/routers/image_router.py

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from familytree.core.http_errors import to_http_exception
from familytree.dependencies import get_image_store
from familytree.schemas.image_schema import (
    ImageDeleteOut,
    ImageListOut,
    ImageOut,
    ImageUploadOut,
)
from familytree.storage import ImageStore

router = APIRouter(prefix="/api/images", tags=["Images"])


# ==========================================================
# UPLOAD AVATAR (multipart field "avatar")
# ==========================================================
@router.post("/{tree_id}/upload", response_model=ImageUploadOut)
def upload_avatar(
    tree_id: str,
    avatar: Optional[UploadFile] = File(None),
    store: ImageStore = Depends(get_image_store),
):
    if avatar is None or not avatar.filename:
        raise HTTPException(400, {"error": "No image file provided"})

    try:
        stored = store.upload(tree_id, avatar.file, avatar.filename, avatar.content_type)
    except Exception as e:
        raise to_http_exception(e, "Failed to upload image") from e
    finally:
        avatar.file.close()

    return ImageUploadOut(
        image_url=stored.url,
        filename=stored.filename,
        original_name=stored.original_name,
        size=stored.size,
    )


# ==========================================================
# LIST IMAGES (missing folder → empty list)
# ==========================================================
@router.get("/{tree_id}", response_model=ImageListOut)
def list_images(
    tree_id: str,
    store: ImageStore = Depends(get_image_store),
):
    try:
        images = store.list_images(tree_id)
    except Exception as e:
        raise to_http_exception(e, "Failed to list images") from e

    return ImageListOut(
        images=[ImageOut(filename=i.filename, url=i.url, path=i.path) for i in images],
        count=len(images),
    )


# ==========================================================
# DELETE IMAGE
# ==========================================================
@router.delete("/{tree_id}/{filename}", response_model=ImageDeleteOut)
def delete_image(
    tree_id: str,
    filename: str,
    store: ImageStore = Depends(get_image_store),
):
    try:
        store.delete(tree_id, filename)
    except Exception as e:
        raise to_http_exception(e, "Failed to delete image") from e

    return ImageDeleteOut(message="Image deleted successfully", filename=filename)
