"""Tests for image compression and batch uploads."""

import asyncio
import os
from io import BytesIO

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from fieldtrack.errors import CompressionError, UploadError, ValidationError
from fieldtrack.services.image_pipeline import (
    CompressionConfig,
    ImageFile,
    compress,
    safe_filename,
    validate_upload,
)

from .conftest import image_file, make_image_bytes


class TestCompress:
    def test_downscales_longest_side(self):
        result = compress(make_image_bytes(3000, 1500, fmt="JPEG"))
        assert (result.width, result.height) == (2048, 1024)
        assert result.content_type == "image/jpeg"
        assert len(result.data) <= 2 * 1024 * 1024

    def test_small_image_not_upscaled(self):
        result = compress(make_image_bytes(640, 480))
        assert (result.width, result.height) == (640, 480)

    def test_keeps_exif(self):
        exif = Image.Exif()
        exif[0x010F] = "FieldCam"
        buf = BytesIO()
        Image.new("RGB", (200, 100), (10, 20, 30)).save(buf, format="JPEG", exif=exif.tobytes())

        result = compress(buf.getvalue())

        assert Image.open(BytesIO(result.data)).getexif()[0x010F] == "FieldCam"

    def test_alpha_kept_as_png(self):
        result = compress(make_image_bytes(100, 100, color=(0, 0, 0, 0), mode="RGBA"))
        assert result.content_type == "image/png"
        assert result.extension == "png"
        assert Image.open(BytesIO(result.data)).mode == "RGBA"

    def test_shrinks_until_minimum_dimension(self):
        noise = Image.frombytes("RGB", (800, 800), os.urandom(800 * 800 * 3))
        buf = BytesIO()
        noise.save(buf, format="PNG")

        result = compress(buf.getvalue(), CompressionConfig(max_bytes=2000))

        assert max(result.width, result.height) == 320

    def test_unreadable_input(self):
        with pytest.raises(CompressionError):
            compress(b"definitely not an image")


class TestValidateUpload:
    def test_type(self):
        with pytest.raises(ValidationError, match="Unsupported image type"):
            validate_upload(ImageFile("notes.pdf", "application/pdf", b"%PDF"))

    def test_empty(self):
        with pytest.raises(ValidationError, match="empty"):
            validate_upload(ImageFile("a.png", "image/png", b""))

    def test_size_limit(self):
        with pytest.raises(ValidationError, match="upload limit"):
            validate_upload(image_file(), CompressionConfig(upload_max_bytes=10))


def test_safe_filename():
    assert safe_filename("Front Door (1).HEIC", "jpg") == "front-door-1.jpg"
    assert safe_filename("", "png") == "image.png"


class TestUploadImages:
    def test_urls_in_input_order(self, pipeline, r2_client):
        files = [image_file("a.png"), image_file("b.png")]

        urls = asyncio.run(pipeline.upload_images(files, "tasks/uid-owner"))

        assert len(urls) == 2
        assert urls[0].startswith("https://cdn.fieldtrack.test/tasks/uid-owner/")
        assert urls[0].endswith("-0-a.jpg")
        assert urls[1].endswith("-1-b.jpg")
        assert r2_client.put_object.call_count == 2
        kwargs = r2_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["ContentType"] == "image/jpeg"

    def test_no_files(self, pipeline, r2_client):
        assert asyncio.run(pipeline.upload_images([], "tasks/x")) == []
        r2_client.put_object.assert_not_called()

    def test_failure_removes_stored_objects(self, pipeline, r2_client):
        def put_object(**kwargs):
            if "-1-" in kwargs["Key"]:
                raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")

        r2_client.put_object.side_effect = put_object
        files = [image_file("a.png"), image_file("b.png")]

        with pytest.raises(UploadError, match="Failed to upload b.png"):
            asyncio.run(pipeline.upload_images(files, "products/uid-owner"))

        deleted = r2_client.delete_object.call_args.kwargs["Key"]
        assert deleted.startswith("products/uid-owner/")
        assert deleted.endswith("-0-a.jpg")

    def test_corrupt_file_keeps_compression_error(self, pipeline, r2_client):
        files = [image_file("a.png"), ImageFile("broken.png", "image/png", b"not an image at all")]

        with pytest.raises(CompressionError):
            asyncio.run(pipeline.upload_images(files, "tasks/uid-owner"))

        r2_client.put_object.assert_called_once()
        assert r2_client.delete_object.call_args.kwargs["Key"].endswith("-0-a.jpg")

    def test_discard_ignores_foreign_urls(self, pipeline, r2_client):
        urls = ["https://cdn.fieldtrack.test/tasks/x/1-0-a.jpg", "https://elsewhere.test/b.jpg"]
        asyncio.run(pipeline.discard(urls))
        r2_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="tasks/x/1-0-a.jpg")

    def test_rejects_before_upload(self, pipeline, r2_client):
        with pytest.raises(ValidationError):
            asyncio.run(pipeline.upload_images([ImageFile("x.txt", "text/plain", b"x")], "tasks/x"))
        r2_client.put_object.assert_not_called()
