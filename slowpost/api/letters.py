# slowpost/api/letters.py

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.datastructures import UploadFile

from slowpost.exceptions import LetterError
from slowpost.schemas.commons_schemas import MessageResponse
from slowpost.schemas.letter_schemas import PendingEditRequest, PendingEditResponse
from slowpost.services.country_service import client_ip
from slowpost.services.letter_input import MEDIA_FIELDS
from slowpost.services.letter_service import LetterService
from slowpost.services.storage.base import MediaUpload
from slowpost.utils.logger import logger

router = APIRouter(
    tags=["letters"],
    responses={
        400: {"model": MessageResponse},
        401: {"model": MessageResponse},
        404: {"model": MessageResponse},
        500: {"model": MessageResponse},
        503: {"model": MessageResponse},
    },
)


def get_letter_service(request: Request) -> LetterService:
    return request.app.state.letter_service


async def _read_upload(name: str, upload: UploadFile, max_bytes: int) -> MediaUpload:
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: {upload.filename} (max {max_bytes // (1024 * 1024)}MB)",
        )
    return MediaUpload(
        field_name=name,
        filename=upload.filename or "",
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


@router.get("/letters")
async def list_letters(service: LetterService = Depends(get_letter_service)) -> List[Dict[str, Any]]:
    try:
        return await service.list_letters()
    except LetterError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f" Letter listing API error: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")


@router.get("/letters/{letter_id}")
async def get_letter(letter_id: str, service: LetterService = Depends(get_letter_service)) -> Dict[str, Any]:
    try:
        return await service.get_letter(letter_id)
    except LetterError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f" Letter lookup API error: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")


@router.post("/letters")
async def create_letter(request: Request, service: LetterService = Depends(get_letter_service)) -> Dict[str, Any]:
    """Multipart create: text fields plus images/videos/audio files."""
    limits = service.settings
    form = await request.form(max_files=limits.max_upload_files * 4 + 1)
    try:
        fields: Dict[str, Any] = {}
        uploads: List[MediaUpload] = []
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename and not value.size:
                    continue
                if name not in MEDIA_FIELDS:
                    raise HTTPException(status_code=400, detail=f"Unexpected field: {name}")
                uploads.append(await _read_upload(name, value, limits.max_upload_size_bytes))
            else:
                fields.setdefault(name, value)

        return await service.create_letter(
            fields,
            uploads,
            ip=client_ip(request.headers, request.client.host if request.client else None),
            headers=request.headers,
        )

    except HTTPException:
        raise
    except LetterError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f" Letter create API error: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")
    finally:
        await form.close()


@router.put("/letters/{letter_id}/edit", response_model=PendingEditResponse)
async def edit_pending_letter(
    letter_id: str,
    payload: PendingEditRequest,
    service: LetterService = Depends(get_letter_service),
):
    try:
        return await service.edit_pending(letter_id, payload)
    except LetterError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f" Pending edit API error: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")
