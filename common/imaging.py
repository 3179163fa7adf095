"""Shared imaging helpers."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from .io import encode_data_url

_MIMETYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


def image_to_bytes(image: Image.Image, format: str = "PNG") -> bytes:
    buf = BytesIO()
    image.save(buf, format=format)
    return buf.getvalue()


def image_to_data_url(image: Image.Image, format: str = "PNG") -> str:
    fmt = format.upper()
    return encode_data_url(image_to_bytes(image, fmt), _MIMETYPES.get(fmt, "image/png"))


def open_image(data: bytes) -> Image.Image:
    """Decode ``data`` honouring EXIF orientation.

    Raises :class:`ValueError` for unreadable streams.
    """

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Unsupported or corrupted image stream") from exc
    return ImageOps.exif_transpose(image)


def prepare_rgb(image: Image.Image) -> Image.Image:
    if image.mode in {"RGBA", "LA"}:
        background = Image.new("RGB", image.size, (255, 255, 255))
        alpha = image.split()[-1]
        background.paste(image.convert("RGBA"), mask=alpha)
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


__all__ = ["image_to_bytes", "image_to_data_url", "open_image", "prepare_rgb"]
