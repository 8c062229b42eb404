"""
Photo Hosting Service using Cloudinary

Work-log photos and receipt photos are uploaded to Cloudinary and only
their URLs are stored with the records.

This service handles:
1. Normalizing phone photos with Pillow (EXIF rotation, RGB, size cap)
2. Uploading to Cloudinary with retries
3. A quick quality check for receipt photos before OCR
4. Decoding base64 data URLs held in the offline queue

DESIGN DECISION: Uploads take an optional public_id. The offline sync
passes a stable id derived from the queued record, so replaying a
record that was half-uploaded overwrites the same image instead of
creating a duplicate.
"""

import base64
import binascii
import re
from io import BytesIO
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from PIL import Image, ImageOps, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from farmbook.config import AppSettings, CloudinarySettings, get_settings


class PhotoUploadError(Exception):
    """Base exception for photo upload errors."""
    pass


class PhotoTooLargeError(PhotoUploadError):
    """Photo exceeds the configured upload size."""
    pass


class InvalidPhotoError(PhotoUploadError):
    """Bytes could not be read as an image."""
    pass


_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(;base64)?,(?P<data>.*)$", re.DOTALL)


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """
    Decode a base64 data URL into (bytes, mime_type).

    A bare base64 string is accepted too and reported as image/jpeg.
    """
    match = _DATA_URL.match(data_url.strip())
    mime = "image/jpeg"
    payload = data_url.strip()
    if match:
        mime = match.group("mime") or mime
        payload = match.group("data")
    try:
        return base64.b64decode(payload, validate=False), mime
    except (binascii.Error, ValueError) as e:
        raise InvalidPhotoError(f"Photo data is not valid base64: {e}")


def assess_photo_quality(image_bytes: bytes) -> tuple[float, list[str]]:
    """
    Quick heuristics for whether a receipt photo is readable.

    Returns: (score between 0 and 1, list_of_issues)
    """
    issues = []
    score = 1.0

    try:
        img = Image.open(BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError):
        return 0.0, ["Photo format could not be checked, the reader will still try it"]

    width, height = img.size
    if min(width, height) < 300:
        issues.append("Photo resolution is too low to read the receipt")
        score -= 0.5
    elif min(width, height) < 600:
        issues.append("Photo resolution is low, small print may be missed")
        score -= 0.2

    histogram = img.convert("L").histogram()
    total = sum(histogram) or 1
    if sum(histogram[:50]) / total > 0.7:
        issues.append("Photo is very dark, try better lighting")
        score -= 0.3
    if sum(histogram[200:]) / total > 0.85:
        issues.append("Photo is overexposed, avoid direct light on the paper")
        score -= 0.2

    return max(0.0, min(1.0, score)), issues


class CloudinaryPhotoService:
    """
    Service for hosting photos on Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Normalize with Pillow
    3. Upload and return the secure URL
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._app_settings = app_settings or get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def prepare_photo(self, image_bytes: bytes) -> bytes:
        """
        Rotate per EXIF, convert to RGB and cap the longest edge.

        Returns JPEG bytes ready for upload.
        """
        try:
            img = Image.open(BytesIO(image_bytes))
            img = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidPhotoError(f"Could not read photo: {e}")

        if img.mode != "RGB":
            img = img.convert("RGB")

        max_edge = self._app_settings.max_photo_edge_px
        img.thumbnail((max_edge, max_edge))

        out = BytesIO()
        img.save(out, format="JPEG", quality=85, optimize=True)
        return out.getvalue()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(cloudinary.exceptions.Error),
        reraise=True,
    )
    def _upload(self, data: bytes, folder: str, public_id: Optional[str]) -> dict:
        options = {
            "folder": f"{self._settings.root_folder}/{folder}",
            "resource_type": "image",
        }
        if public_id:
            options["public_id"] = public_id
            options["overwrite"] = True
        return cloudinary.uploader.upload(data, **options)

    async def upload(
        self,
        image_bytes: bytes,
        folder: str,
        public_id: Optional[str] = None,
    ) -> str:
        """
        Upload one photo and return its secure URL.

        Raises:
            PhotoTooLargeError: If the photo exceeds the size limit
            InvalidPhotoError: If the bytes are not an image
            PhotoUploadError: If Cloudinary rejects the upload
        """
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            raise PhotoTooLargeError(
                f"Photo is {len(image_bytes) / 1024 / 1024:.1f} MB; "
                f"the limit is {self._app_settings.max_upload_size_mb} MB"
            )

        self._configure()
        data = self.prepare_photo(image_bytes)

        try:
            result = self._upload(data, folder, public_id)
        except cloudinary.exceptions.Error as e:
            raise PhotoUploadError(f"Cloudinary error: {e}")

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise PhotoUploadError("No URL returned from Cloudinary")
        return url

    async def upload_many(
        self,
        images: list[bytes],
        folder: str,
        id_prefix: Optional[str] = None,
    ) -> list[str]:
        """Upload several photos in order. Fails on the first error."""
        urls = []
        for idx, image_bytes in enumerate(images):
            public_id = f"{id_prefix}_{idx}" if id_prefix else None
            urls.append(await self.upload(image_bytes, folder, public_id=public_id))
        return urls
