"""Per-identity profile document with an optional thumbnail picture."""

import base64
import io
import logging
import os
from typing import Any, Dict, Mapping, Optional, Union

from PIL import Image, UnidentifiedImageError

from . import datastore
from .datastore import USERS
from .session import Session
from .standings import now_ms

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("displayName", "dob", "racingTeam", "kartNumber", "racingClass")

JPEG_QUALITY = 80


class InvalidPicture(ValueError):
    """The uploaded file could not be read as an image."""


def _thumbnail_px() -> int:
    try:
        return max(16, int(os.environ.get("PROFILE_THUMBNAIL_PX", "200")))
    except ValueError:
        return 200


def picture_to_data_uri(picture: Union[bytes, io.IOBase]) -> str:
    """Shrink an uploaded image to a JPEG thumbnail and encode it as a data URI."""
    raw = picture if isinstance(picture, (bytes, bytearray)) else picture.read()
    size = _thumbnail_px()
    try:
        with Image.open(io.BytesIO(raw)) as im:
            thumb = im.convert("RGB")
            thumb.thumbnail((size, size), Image.LANCZOS)
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidPicture("Please choose a valid image file.") from exc
    bio = io.BytesIO()
    thumb.save(bio, format="JPEG", quality=JPEG_QUALITY)
    b64 = base64.b64encode(bio.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"


def load_profile(session: Session) -> Dict[str, Any]:
    identity = session.require()
    stored = datastore.get(USERS, identity.uid) or {}
    profile = {key: stored.get(key, "") for key in PROFILE_FIELDS}
    profile["ownerId"] = identity.uid
    profile["profilePictureDataUri"] = stored.get("profilePictureDataUri", "")
    return profile


def save_profile(
    session: Session, fields: Mapping[str, Any], picture: Optional[Union[bytes, io.IOBase]] = None
) -> Dict[str, Any]:
    identity = session.require()
    record: Dict[str, Any] = {
        key: str(fields.get(key) or "").strip() for key in PROFILE_FIELDS if key in fields
    }
    if picture:
        record["profilePictureDataUri"] = picture_to_data_uri(picture)
    record["ownerId"] = identity.uid
    record["updatedAt"] = now_ms()
    datastore.set_doc(USERS, identity.uid, record, merge=True)
    logger.info("profile saved for %s", identity.uid)
    return load_profile(session)
