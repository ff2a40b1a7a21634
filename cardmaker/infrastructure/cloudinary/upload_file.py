# cardmaker/infrastructure/cloudinary/upload_file.py
import os
from io import BytesIO
from typing import List, Optional

import cloudinary
import cloudinary.uploader

from cardmaker.config.settings import settings

_configured = False


def configure() -> None:
    """Configure once, from CLOUDINARY_URL when given, else from the split vars."""
    global _configured
    if _configured:
        return
    if settings.CLOUDINARY_URL:
        os.environ.setdefault("CLOUDINARY_URL", settings.CLOUDINARY_URL)
        cloudinary.reset_config()
        cloudinary.config(secure=True)
    else:
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )
    _configured = True


def upload_jpeg_bytes(
    content: bytes,
    public_id: str,
    folder: Optional[str] = None,
    overwrite: bool = True,
    tags: Optional[List[str]] = None,
) -> str:
    """Upload an exported card and return its HTTPS URL. Blocking; run it in the executor."""
    configure()
    res = cloudinary.uploader.upload(
        BytesIO(content),
        resource_type="image",
        folder=folder or settings.CLOUDINARY_FOLDER,
        public_id=public_id,
        overwrite=overwrite,
        format="jpg",
        tags=tags or [],
    )
    return res["secure_url"]
