"""Tests for the Gemini receipt reader and the Cloudinary photo service."""

import asyncio
import pytest
from decimal import Decimal
from io import BytesIO

import cloudinary.uploader
from PIL import Image

from farmbook.config import AppSettings, CloudinarySettings, GeminiSettings
from farmbook.services.image import CloudinaryPhotoService, InvalidPhotoError, PhotoTooLargeError
from farmbook.services.ocr import AllModelsFailedError, GeminiReceiptService


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, name, reply=None, error=None):
        self.name = name
        self.reply = reply
        self.error = error
        self.calls = []

    async def generate_content_async(self, parts):
        self.calls.append(parts)
        if self.error:
            raise self.error
        return FakeResponse(self.reply)


def gemini_settings(models="m-exp,m-flash,m-pro"):
    return GeminiSettings(api_key="test-key", receipt_models=models)


class TestGeminiReceiptService:
    """Tests for the model fallback chain."""

    def reader(self, behaviours, models="m-exp,m-flash,m-pro"):
        created = []

        def factory(name):
            model = FakeModel(name, **behaviours.get(name, {"error": RuntimeError("unavailable")}))
            created.append(model)
            return model

        return GeminiReceiptService(settings=gemini_settings(models), model_factory=factory), created

    def test_first_model_answers(self):
        """The chain stops at the first usable reply."""
        reader, created = self.reader({"m-exp": {"reply": '{"amount": 980, "date": "2024-05-01"}'}})
        data = asyncio.run(reader.analyze(b"jpeg-bytes", "image/png"))
        assert data.amount == Decimal("980")
        assert data.model_used == "m-exp"
        assert [m.name for m in created] == ["m-exp"]
        assert created[0].calls[0][1] == {"mime_type": "image/png", "data": b"jpeg-bytes"}

    def test_falls_through_errors_and_bad_json(self):
        """A failing model and a prose reply both move on to the next one."""
        reader, created = self.reader({
            "m-exp": {"error": RuntimeError("429 quota")},
            "m-flash": {"reply": "I cannot read this."},
            "m-pro": {"reply": '{"amount": "1,500", "category": "seed"}'},
        })
        data = asyncio.run(reader.analyze(b"jpeg-bytes"))
        assert data.amount == Decimal("1500")
        assert data.model_used == "m-pro"
        assert [m.name for m in created] == ["m-exp", "m-flash", "m-pro"]

    def test_all_models_failed(self):
        """Every model is tried and named in the error."""
        reader, _ = self.reader({}, models="m-exp, m-flash")
        with pytest.raises(AllModelsFailedError) as exc_info:
            asyncio.run(reader.analyze(b"jpeg-bytes"))
        assert exc_info.value.tried_models == ["m-exp", "m-flash"]
        assert "unavailable" in str(exc_info.value)


def image_bytes(size, mode="RGB", fmt="JPEG", orientation=None):
    out = BytesIO()
    img = Image.new(mode, size)
    if orientation:
        exif = img.getexif()
        exif[0x0112] = orientation
        img.save(out, format=fmt, exif=exif)
    else:
        img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def photo_uploads(monkeypatch):
    calls = []

    def fake_upload(data, **options):
        calls.append((data, options))
        return {"secure_url": f"https://res.example/{options['folder']}/{len(calls)}.jpg"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    return calls


class TestCloudinaryPhotoService:
    """Tests for photo normalization and upload."""

    def service(self, **app):
        return CloudinaryPhotoService(
            settings=CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret"),
            app_settings=AppSettings(**app),
        )

    def test_prepare_caps_edge_and_converts(self):
        """Transparent PNGs come out as RGB JPEGs within the size cap."""
        service = self.service(max_photo_edge_px=256)
        prepared = Image.open(BytesIO(service.prepare_photo(image_bytes((600, 300), "RGBA", "PNG"))))
        assert prepared.format == "JPEG"
        assert prepared.mode == "RGB"
        assert prepared.size == (256, 128)

    def test_prepare_applies_exif_rotation(self):
        """A portrait photo stored sideways is turned upright."""
        service = self.service(max_photo_edge_px=2048)
        prepared = Image.open(BytesIO(service.prepare_photo(image_bytes((400, 200), orientation=6))))
        assert prepared.size == (200, 400)

    def test_prepare_rejects_non_image(self):
        """Bytes Pillow can't open are refused."""
        with pytest.raises(InvalidPhotoError):
            self.service().prepare_photo(b"not-an-image")

    def test_too_large(self, photo_uploads):
        """Oversized photos never reach Cloudinary."""
        service = self.service(max_upload_size_mb=1)
        with pytest.raises(PhotoTooLargeError):
            asyncio.run(service.upload(b"x" * (1024 * 1024 + 1), "work_logs"))
        assert photo_uploads == []

    def test_upload_with_public_id(self, photo_uploads):
        """A stable public id overwrites the same image on replay."""
        service = self.service()
        url = asyncio.run(service.upload(image_bytes((100, 100)), "work_logs", public_id="log-1_0"))
        assert url == "https://res.example/farmbook/work_logs/1.jpg"
        _, options = photo_uploads[0]
        assert options["public_id"] == "log-1_0"
        assert options["overwrite"] is True

    def test_upload_many_numbers_ids(self, photo_uploads):
        """Photos of one record get ids prefix_0, prefix_1."""
        service = self.service()
        urls = asyncio.run(service.upload_many([image_bytes((50, 50))] * 2, "work_logs", id_prefix="log-1"))
        assert len(urls) == 2
        assert [options["public_id"] for _, options in photo_uploads] == ["log-1_0", "log-1_1"]
