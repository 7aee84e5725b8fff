from io import BytesIO

from PIL import Image, ImageOps

# longest edge of a staged thumbnail
MAX_THUMBNAIL_EDGE = 1280


def compress_image(content: bytes, quality: float = 0.2, max_edge: int = MAX_THUMBNAIL_EDGE) -> bytes:
    """Re-encode an image as a small, low-quality JPEG.

    ``quality`` is a 0-1 fraction, as used by browser canvas encoders.
    """
    with Image.open(BytesIO(content)) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode in ("RGBA", "LA", "P"):
            if img.mode == "P":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)

        buffer = BytesIO()
        jpeg_quality = max(1, min(95, round(quality * 100)))
        img.save(buffer, format="JPEG", quality=jpeg_quality, optimize=True)
    return buffer.getvalue()
