"""Property image processing (Pillow) + local file storage.

Uploads are validated (type, size, dimensions), oriented from EXIF, resized
to fit inside 400x600 (retrato) or 800x500 (paisagem) without enlarging,
re-encoded as JPEG, and paired with a 200x150 thumbnail. Files live under
UPLOAD_FOLDER/imoveis/<id>/ and are served from /uploads/<path>.
"""

from __future__ import annotations

import io
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Literal

from flask import current_app
from PIL import Image, ImageOps, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .validation import FieldError, validate_image_dimensions, validate_image_file

logger = logging.getLogger("imobiliaria.images")

Orientation = Literal["retrato", "paisagem"]

SIZES: dict[str, tuple[int, int, int]] = {
    # width, height, jpeg quality
    "retrato": (400, 600, 85),
    "paisagem": (800, 500, 85),
    "thumbnail": (200, 150, 70),
}

URL_PREFIX = "/uploads/"


def detect_orientation(width: int, height: int) -> Orientation:
    return "retrato" if height > width else "paisagem"


@dataclass
class ProcessedImage:
    content: bytes
    thumbnail: bytes
    orientation: Orientation
    width: int
    height: int


def _to_jpeg(img: Image.Image, box: tuple[int, int], quality: int) -> tuple[bytes, tuple[int, int]]:
    copy = img.copy()
    copy.thumbnail(box, Image.Resampling.LANCZOS)  # fit inside, never enlarges
    buf = io.BytesIO()
    copy.save(buf, "JPEG", quality=quality, optimize=True, progressive=True)
    return buf.getvalue(), copy.size


def process_image(img: Image.Image) -> ProcessedImage:
    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    orientation = detect_orientation(*img.size)
    w, h, q = SIZES[orientation]
    content, size = _to_jpeg(img, (w, h), q)
    tw, th, tq = SIZES["thumbnail"]
    thumb, _ = _to_jpeg(img, (tw, th), tq)
    return ProcessedImage(content=content, thumbnail=thumb, orientation=orientation, width=size[0], height=size[1])


def upload_root() -> str:
    root = current_app.config.get("UPLOAD_FOLDER") or os.path.join(current_app.instance_path, "uploads")
    os.makedirs(root, exist_ok=True)
    return root


class ImageStorage:
    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    @classmethod
    def from_app(cls) -> ImageStorage:
        return cls(upload_root())

    def _abs(self, rel: str) -> str:
        path = os.path.abspath(os.path.join(self.root, rel))
        if os.path.commonpath([path, self.root]) != self.root:
            raise ValueError("path escapes upload root")
        return path

    def save(self, rel: str, data: bytes) -> str:
        path = self._abs(rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        return rel

    def delete(self, rel: str | None) -> bool:
        if not rel:
            return False
        try:
            os.remove(self._abs(rel))
            return True
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Could not remove upload %s", rel, exc_info=True)
            return False

    @staticmethod
    def url(rel: str) -> str:
        return URL_PREFIX + rel.replace(os.sep, "/")


@dataclass
class StoredImage:
    storage_path: str
    thumb_path: str
    url: str
    url_thumb: str
    tipo: Orientation
    original_name: str


def _size_of(fs: FileStorage) -> int:
    stream = fs.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def store_uploads(imovel_id: int, files: list[FileStorage], storage: ImageStorage) -> tuple[list[StoredImage], list[FieldError]]:
    """Process each upload independently; a bad file is reported, the rest are still stored."""
    stored: list[StoredImage] = []
    errors: list[FieldError] = []
    for idx, fs in enumerate(files):
        name = fs.filename or f"arquivo_{idx + 1}"
        file_errors = validate_image_file(name, fs.mimetype, _size_of(fs))
        if file_errors:
            errors.extend(file_errors)
            continue
        try:
            with Image.open(fs.stream) as img:
                # header size only; pixels are not decoded until load()
                dim_errors = validate_image_dimensions(img.width, img.height, name)
                if dim_errors:
                    errors.extend(dim_errors)
                    continue
                img.load()
                processed = process_image(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
            logger.info("Rejected unreadable image %s for imovel %s", name, imovel_id)
            errors.append(FieldError(field=name, message=f"{name}: arquivo de imagem inválido", code="INVALID_IMAGE"))
            continue
        stem = os.path.splitext(secure_filename(name))[0] or "imagem"
        base = f"imoveis/{imovel_id}/{uuid.uuid4().hex[:12]}_{stem}"
        main_rel = storage.save(f"{base}.jpg", processed.content)
        thumb_rel = storage.save(f"{base}_thumb.jpg", processed.thumbnail)
        stored.append(
            StoredImage(
                storage_path=main_rel,
                thumb_path=thumb_rel,
                url=storage.url(main_rel),
                url_thumb=storage.url(thumb_rel),
                tipo=processed.orientation,
                original_name=name,
            )
        )
    return stored, errors


__all__ = [
    "ImageStorage",
    "ProcessedImage",
    "SIZES",
    "StoredImage",
    "detect_orientation",
    "process_image",
    "store_uploads",
    "upload_root",
]
