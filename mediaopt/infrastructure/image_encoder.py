import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional
from PIL import Image
from mediaopt.config.models import RunConfig
from mediaopt.domain.cancellation import CancellationToken
from mediaopt.domain.errors import EncoderError, UnsupportedFormatError
from mediaopt.domain.models import IMAGE_EXTENSIONS
from mediaopt.infrastructure.file_ops import remove_quietly

# Target extension -> Pillow format name
_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}


class ImageEncoder:
    """Re-encodes JPEG/PNG/WebP images in-process with Pillow.

    The output format follows the destination extension, so the same encoder
    handles both plain recompression and WebP conversion.
    """

    def __init__(self, jpeg_quality: int = 80, webp_quality: int = 80):
        self.jpeg_quality = jpeg_quality
        self.webp_quality = webp_quality
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RunConfig) -> "ImageEncoder":
        return cls(jpeg_quality=config.jpeg_quality, webp_quality=config.webp_quality)

    def _save_kwargs(self, target_format: str) -> Dict[str, Any]:
        if target_format == "JPEG":
            return {"quality": self.jpeg_quality, "optimize": True}
        if target_format == "WEBP":
            return {"quality": self.webp_quality, "method": 6}
        return {"optimize": True}

    def encode(
        self,
        source: Path,
        destination: Path,
        timeout: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """Encodes ``source`` into ``destination``.

        ``timeout`` is advisory: a Pillow save cannot be interrupted, so the
        caller checks its own deadline once the encoder returns. ``cancel`` is
        honoured only before decoding starts.
        """
        source_ext = source.suffix.lower().lstrip(".")
        if source_ext not in IMAGE_EXTENSIONS:
            raise UnsupportedFormatError(f"Unsupported image format: {source}")
        target_format = _FORMATS.get(destination.suffix.lower().lstrip("."))
        if target_format is None:
            raise UnsupportedFormatError(f"Unsupported output format: {destination}")
        if cancel is not None:
            cancel.checkpoint("before image encode")

        start_time = time.monotonic()
        try:
            with Image.open(source) as img:
                img.load()
                if target_format == "JPEG" and img.mode not in ("RGB", "L", "CMYK"):
                    img = img.convert("RGB")
                img.save(destination, format=target_format, **self._save_kwargs(target_format))
        except (OSError, ValueError) as exc:
            remove_quietly(destination)
            raise EncoderError(f"Image encoding failed for {source}: {exc}") from exc

        self.logger.debug(
            f"IMAGE_ENCODED: {source.name} -> {destination.name} "
            f"({target_format}, {time.monotonic() - start_time:.2f}s)"
        )
