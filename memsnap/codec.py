"""Image codec - serialize/compress an image into artifact bytes and back.

Format: a JSON ImageDocument (sorted directories, sorted files with base64
content) compressed with zlib. Equal images always produce equal bytes.
"""

from __future__ import annotations

import base64
import binascii
import logging
import zlib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ValidationError

from .cache import fingerprint
from .errors import ImageFormatError, ImagePathError
from .image import VirtualFilesystemImage

logger = logging.getLogger(__name__)

IMAGE_FORMAT = "memsnap-image"
IMAGE_VERSION = 1
COMPRESSION_LEVEL = 9


class FileRecord(BaseModel):
    """One file of a serialized image."""

    path: str
    content: str  # base64


class ImageDocument(BaseModel):
    """Serialized form of a VirtualFilesystemImage."""

    format: Literal["memsnap-image"] = IMAGE_FORMAT
    version: Literal[1] = IMAGE_VERSION
    directories: list[str]
    files: list[FileRecord]


def serialize(image: VirtualFilesystemImage) -> bytes:
    """Serialize an image to JSON bytes."""
    document = ImageDocument(
        directories=sorted(image.directories),
        files=[
            FileRecord(path=path, content=base64.b64encode(content).decode("ascii"))
            for path, content in image.iter_files()
        ],
    )
    return document.model_dump_json().encode("utf-8")


def deserialize(data: bytes) -> VirtualFilesystemImage:
    """
    Rebuild an image from serialize() output.

    Raises:
        ImageFormatError: If the document is malformed, from another format
            version, or describes an inconsistent tree
    """
    try:
        document = ImageDocument.model_validate_json(data)
    except ValidationError as e:
        raise ImageFormatError(f"Invalid image document ({e.error_count()} error(s))") from e

    image = VirtualFilesystemImage()
    try:
        for directory in document.directories:
            image.makedirs(directory)
        for record in document.files:
            image.write_file(record.path, base64.b64decode(record.content, validate=True))
    except binascii.Error as e:
        raise ImageFormatError(f"Invalid file content encoding: {e}") from e
    except ImagePathError as e:
        raise ImageFormatError(f"Inconsistent image tree: {e}") from e

    return image


def compress(data: bytes) -> bytes:
    return zlib.compress(data, COMPRESSION_LEVEL)


def decompress(data: bytes) -> bytes:
    """
    Inverse of compress().

    Raises:
        ImageFormatError: If the bytes are not a valid zlib stream
    """
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise ImageFormatError(f"Corrupt compressed image: {e}") from e


def finalize(image: VirtualFilesystemImage) -> bytes:
    """Serialize then compress: the artifact bytes for an image."""
    return compress(serialize(image))


def load_artifact(data: bytes) -> VirtualFilesystemImage:
    """Decompress then deserialize artifact bytes. Raises ImageFormatError."""
    return deserialize(decompress(data))


def load_prior_artifact(artifact_path: Path | str) -> tuple[VirtualFilesystemImage, str] | None:
    """
    Load the image from a previously emitted artifact, with the fingerprint
    of the artifact bytes it was read from.

    Any failure (missing file, unreadable file, corrupt compression or
    serialization) means "no prior image" so the build starts fresh.
    Never raises.
    """
    path = Path(artifact_path)
    if not path.exists():
        logger.debug("no prior artifact at %s", path)
        return None

    try:
        data = path.read_bytes()
    except OSError as e:
        logger.warning("cannot read prior artifact %s: %s; starting from an empty image", path, e)
        return None

    try:
        image = load_artifact(data)
    except ImageFormatError as e:
        logger.warning("prior artifact %s is unusable: %s; starting from an empty image", path, e)
        return None

    logger.debug("loaded prior image from %s: %r", path, image)
    return image, fingerprint(data)


def load_prior_image(artifact_path: Path | str) -> VirtualFilesystemImage | None:
    """Image of a previously emitted artifact, or None. Never raises."""
    prior = load_prior_artifact(artifact_path)
    return prior[0] if prior is not None else None


__all__ = [
    "IMAGE_FORMAT",
    "IMAGE_VERSION",
    "ImageDocument",
    "FileRecord",
    "serialize",
    "deserialize",
    "compress",
    "decompress",
    "finalize",
    "load_artifact",
    "load_prior_artifact",
    "load_prior_image",
]
