"""Shared fixtures: in-memory storage and audit log, no external services."""

import pytest

from farmbook.audit import AuditLogger
from farmbook.models.base import local_zone
from farmbook.services.storage import InMemoryAuditStorage, InMemoryRecordStorage


class FakePhotoService:
    """Stands in for Cloudinary; records what was uploaded."""

    def __init__(self):
        self.uploads = []

    async def upload(self, image_bytes, folder, public_id=None):
        self.uploads.append((image_bytes, folder, public_id))
        return f"https://img.example/{folder}/{public_id or len(self.uploads)}.jpg"

    async def upload_many(self, images, folder, id_prefix=None):
        urls = []
        for i, image in enumerate(images):
            urls.append(await self.upload(image, folder, f"{id_prefix}_{i}" if id_prefix else None))
        return urls


@pytest.fixture
def storage():
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def photo_service():
    return FakePhotoService()


@pytest.fixture(autouse=True)
def farm_timezone(monkeypatch):
    """Every test runs on a farm in Japan, whatever the host's zone."""
    monkeypatch.setenv("LOCAL_TIMEZONE", "Asia/Tokyo")
    local_zone.cache_clear()
    yield "Asia/Tokyo"
    local_zone.cache_clear()
