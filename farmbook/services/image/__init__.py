"""Photo hosting services package."""

from farmbook.services.image.cloudinary_service import (
    CloudinaryPhotoService,
    InvalidPhotoError,
    PhotoTooLargeError,
    PhotoUploadError,
    assess_photo_quality,
    decode_data_url,
)

__all__ = [
    "CloudinaryPhotoService",
    "InvalidPhotoError",
    "PhotoTooLargeError",
    "PhotoUploadError",
    "assess_photo_quality",
    "decode_data_url",
]
