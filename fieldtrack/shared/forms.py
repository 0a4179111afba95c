"""Helpers for multipart create/update requests (JSON `data` field + image files)"""

import json
from collections.abc import AsyncIterator
from typing import Optional, TypeVar

import pydantic
from fastapi import UploadFile
from pydantic import BaseModel

from ..errors import FieldTrackError, ValidationError
from ..services.image_pipeline import ImageFile

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_form_json(model: type[ModelT], raw: Optional[str]) -> ModelT:
    """Validate the JSON `data` form field against `model`."""
    try:
        return model.model_validate_json(raw or "{}")
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input")
        raise ValidationError(f"{location}: {message}" if location else message) from e


async def read_uploads(files: Optional[list[UploadFile]]) -> list[ImageFile]:
    images = []
    for upload in files or []:
        if not upload.filename:
            continue
        images.append(
            ImageFile(
                filename=upload.filename,
                content_type=upload.content_type or "",
                data=await upload.read(),
            )
        )
    return images


async def sse_events(stream: AsyncIterator) -> AsyncIterator[str]:
    """Render snapshot stream items as server-sent events."""
    async for item in stream:
        if isinstance(item, FieldTrackError):
            yield f"event: error\ndata: {json.dumps(item.to_dict())}\n\n"
        else:
            yield f"event: snapshot\ndata: {json.dumps(item)}\n\n"
