"""Image pipeline for product and task photos.

Every uploaded photo is compressed before it reaches object storage:
    1. Apply size guard on the raw upload
    2. Resize (max 2048 on the longest side, aspect ratio preserved, no upscaling)
    3. Re-encode as JPEG, starting at quality 80 and stepping down until the
       result fits in 2MB (PNG is kept when the image has transparency)
    4. Keep the EXIF block so orientation and capture metadata survive

Usage:
    pipeline = ImagePipeline(get_storage())
    urls = await pipeline.upload_images(files, "tasks/<uid>")
"""

import asyncio
import logging
import re
import time
import unicodedata
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..config import (
    IMAGE_INITIAL_QUALITY,
    IMAGE_MAX_BYTES,
    IMAGE_MAX_DIMENSION,
    IMAGE_UPLOAD_MAX_BYTES,
)
from ..errors import CompressionError, FieldTrackError, UploadError, ValidationError
from .storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = [
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/tiff",
]

QUALITY_STEP = 10
MIN_QUALITY = 40
MIN_DIMENSION = 320
SHRINK_FACTOR = 0.75


@dataclass
class ImageFile:
    """Raw upload as received from the client."""

    filename: str
    content_type: str
    data: bytes


@dataclass
class CompressedImage:
    data: bytes
    content_type: str
    extension: str
    width: int
    height: int


@dataclass
class CompressionConfig:
    max_bytes: int = IMAGE_MAX_BYTES
    max_dimension: int = IMAGE_MAX_DIMENSION
    initial_quality: int = int(IMAGE_INITIAL_QUALITY * 100)
    upload_max_bytes: int = IMAGE_UPLOAD_MAX_BYTES


_STRIP_RE = re.compile(r"[^\w\s.-]", re.UNICODE)
_MULTI_DASH_RE = re.compile(r"[-\s]+")


def safe_filename(filename: str, extension: str) -> str:
    """Filesystem/URL friendly name with the extension of the stored encoding."""
    stem = PurePath(filename or "image").stem
    stem = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode().lower()
    stem = _MULTI_DASH_RE.sub("-", _STRIP_RE.sub("", stem)).strip("-.")
    return f"{stem or 'image'}.{extension}"


def validate_upload(image: ImageFile, config: Optional[CompressionConfig] = None) -> None:
    config = config or CompressionConfig()
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image type: {image.content_type or 'unknown'}")
    if not image.data:
        raise ValidationError(f"{image.filename} is empty")
    if len(image.data) > config.upload_max_bytes:
        limit_mb = config.upload_max_bytes / (1024 * 1024)
        raise ValidationError(f"{image.filename} exceeds the {limit_mb:.0f}MB upload limit")


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def _fit(img: Image.Image, max_dimension: int) -> Image.Image:
    """Resize to fit within max_dimension, preserving aspect ratio. Never upscales."""
    if img.width <= max_dimension and img.height <= max_dimension:
        return img
    ratio = min(max_dimension / img.width, max_dimension / img.height)
    size = (max(1, int(img.width * ratio)), max(1, int(img.height * ratio)))
    return img.resize(size, Image.LANCZOS)


def _encode(img: Image.Image, as_png: bool, quality: int, exif: Optional[bytes]) -> bytes:
    buf = BytesIO()
    options = {"exif": exif} if exif else {}
    if as_png:
        img.save(buf, format="PNG", optimize=True, **options)
    else:
        img.save(buf, format="JPEG", quality=quality, optimize=True, **options)
    return buf.getvalue()


def compress(data: bytes, config: Optional[CompressionConfig] = None) -> CompressedImage:
    """Compress raw image bytes; raises CompressionError for unreadable input."""
    config = config or CompressionConfig()
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CompressionError("Failed to read image data") from e

    exif = img.info.get("exif")
    as_png = _has_alpha(img)
    img = img.convert("RGBA" if as_png else "RGB")

    dimension = config.max_dimension
    try:
        while True:
            resized = _fit(img, dimension)
            quality = config.initial_quality
            encoded = _encode(resized, as_png, quality, exif)
            while len(encoded) > config.max_bytes and not as_png and quality > MIN_QUALITY:
                quality -= QUALITY_STEP
                encoded = _encode(resized, as_png, quality, exif)
            if len(encoded) <= config.max_bytes or dimension <= MIN_DIMENSION:
                break
            dimension = max(MIN_DIMENSION, int(max(resized.size) * SHRINK_FACTOR))
    except OSError as e:
        raise CompressionError() from e

    if len(encoded) > config.max_bytes:
        logger.warning(f"⚠️ Image still {len(encoded)} bytes at minimum size, storing anyway")

    return CompressedImage(
        data=encoded,
        content_type="image/png" if as_png else "image/jpeg",
        extension="png" if as_png else "jpg",
        width=resized.width,
        height=resized.height,
    )


class ImagePipeline:
    def __init__(self, storage: ObjectStorage, config: Optional[CompressionConfig] = None):
        self.storage = storage
        self.config = config or CompressionConfig()

    def upload(self, image: CompressedImage, path: str) -> str:
        """Store a compressed image and return its public URL."""
        return self.storage.put(image.data, path, image.content_type)

    def _process(self, image: ImageFile, base_path: str, index: int, stamp: int) -> str:
        compressed = compress(image.data, self.config)
        path = f"{base_path}/{stamp}-{index}-{safe_filename(image.filename, compressed.extension)}"
        logger.debug(
            f"🗜️ {image.filename}: {len(image.data)} → {len(compressed.data)} bytes "
            f"({compressed.width}x{compressed.height})"
        )
        return self.upload(compressed, path)

    async def upload_images(self, files: list[ImageFile], base_path: str) -> list[str]:
        """
        Compress and upload all files concurrently, returning URLs in input order.

        All-or-nothing: if any file fails, objects already stored for this
        batch are removed. Unreadable images raise CompressionError; storage
        and unexpected failures raise UploadError.
        """
        if not files:
            return []
        for image in files:
            validate_upload(image, self.config)

        stamp = int(time.time() * 1000)
        results = await asyncio.gather(
            *(
                asyncio.to_thread(self._process, image, base_path, index, stamp)
                for index, image in enumerate(files)
            ),
            return_exceptions=True,
        )

        failures = [(files[i], r) for i, r in enumerate(results) if isinstance(r, BaseException)]
        if not failures:
            logger.info(f"✅ Uploaded {len(results)} image(s) to {base_path}")
            return list(results)

        await self.discard([url for url in results if isinstance(url, str)])

        image, error = failures[0]
        logger.error(f"❌ Image upload batch failed ({len(failures)}/{len(files)}): {error}")
        if isinstance(error, (CompressionError, ValidationError)):
            raise error
        if isinstance(error, FieldTrackError):
            raise UploadError(f"Failed to upload {image.filename}: {error.message}") from error
        raise UploadError(f"Failed to upload {image.filename}") from error

    async def discard(self, urls: list[str]) -> None:
        """Remove stored objects that no saved record will reference."""
        for url in urls:
            key = self.storage.key_from_url(url)
            if key:
                await asyncio.to_thread(self.storage.delete, key)
        if urls:
            logger.info(f"🗑️ Discarded {len(urls)} unreferenced image(s)")


def get_image_pipeline() -> ImagePipeline:
    return ImagePipeline(get_storage())
