"""
Client-side image optimization before upload.

Photos of finds come straight off phone cameras: 4000x3000 pixels and
several megabytes. Before the upload form sends one, the optimizer scales
it down to the configured bounds and recompresses it, so uploads stay
under the server's size limit.

Rules:
    - Never upscale: the scale ratio is min(1, max_w / w, max_h / h).
    - Pixels keep their stored orientation and the EXIF orientation tag is
      carried over, so neither output axis exceeds the input's. The bounds
      apply to the image as displayed.
    - An image that already fits both the bounds and the byte budget is
      returned untouched, with no recompression.
    - PNG stays PNG, everything else becomes JPEG.
    - A JPEG still over budget is re-exported at decreasing quality
      (quality_step per round) down to quality_floor.
    - The result is only used if it is strictly smaller than the input.

Decode and encode failures raise ImageOptimizationError. The upload form
decides whether to send the original or ask for another image.

Usage:
    optimizer = ImageOptimizer()
    optimized = optimizer.optimize(ImageFile.from_path(Path("coin.jpg")))
    optimized.save_to(Path("upload"))
"""

import asyncio
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from digquest_sync.core.config import OptimizerConfig
from digquest_sync.core.exceptions import ImageOptimizationError
from digquest_sync.core.logger import get_logger

logger = get_logger(__name__)


PNG_TYPE = "image/png"
JPEG_TYPE = "image/jpeg"

EXIF_ORIENTATION = 0x0112
# Orientations 5-8 display the stored pixels turned by 90 degrees
SIDEWAYS_ORIENTATIONS = (5, 6, 7, 8)


@dataclass(frozen=True)
class ImageFile:
    """
    An image file held in memory.

    Attributes:
        name: File name, used to derive the optimized file's name.
        data: Encoded image bytes.
        content_type: MIME type as reported by the file picker.
    """
    name: str
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> "ImageFile":
        """
        Read an image file from disk, guessing its MIME type from the name.

        Raises:
            ImageOptimizationError: If the file cannot be read.
        """
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageOptimizationError(
                f"Failed to read image '{path}': {e}",
                details={"path": str(path)}
            ) from e
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, data=data, content_type=content_type)

    def save_to(self, directory: Path) -> Path:
        """Write the file into directory (created if needed) and return its path."""
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / self.name
        target.write_bytes(self.data)
        return target


@dataclass(frozen=True)
class OptimizeOptions:
    """
    Target constraints for optimization.

    Attributes:
        max_width: Maximum output width in pixels.
        max_height: Maximum output height in pixels.
        quality: Initial JPEG quality, 0..1.
        max_output_bytes: Size budget for the output file.
        quality_step: Quality decrement per re-export.
        quality_floor: Lowest quality tried.
    """
    max_width: int = 1200
    max_height: int = 1200
    quality: float = 0.82
    max_output_bytes: int = int(2.5 * 1024 * 1024)
    quality_step: float = 0.08
    quality_floor: float = 0.55

    @classmethod
    def from_config(cls, config: OptimizerConfig) -> "OptimizeOptions":
        return cls(
            max_width=config.max_width,
            max_height=config.max_height,
            quality=config.quality,
            max_output_bytes=config.max_output_bytes,
            quality_step=config.quality_step,
            quality_floor=config.quality_floor,
        )


def _pillow_quality(quality: float) -> int:
    """Map a 0..1 quality to Pillow's JPEG scale (1..95)."""
    return max(1, min(95, round(quality * 100)))


class ImageOptimizer:
    """Scale and recompress images before upload."""

    def __init__(self, options: OptimizeOptions | None = None) -> None:
        self.options = options or OptimizeOptions()

    def optimize(self, image: ImageFile, options: OptimizeOptions | None = None) -> ImageFile:
        """
        Return a smaller replacement for image, or image itself.

        Args:
            image: The file selected by the user.
            options: Overrides the optimizer's default constraints.

        Returns:
            A new ImageFile named '<stem>-optimized.<jpg|png>' when that is
            strictly smaller than the input, otherwise the input object.

        Raises:
            ImageOptimizationError: If the image cannot be decoded or encoded.
        """
        opts = options or self.options
        bitmap, source_format, exif = self._load(image)

        width, height = bitmap.size
        max_width, max_height = opts.max_width, opts.max_height
        if exif is not None and exif.get(EXIF_ORIENTATION) in SIDEWAYS_ORIENTATIONS:
            max_width, max_height = max_height, max_width
        scale = min(1.0, max_width / width, max_height / height)
        target_size = (max(1, round(width * scale)), max(1, round(height * scale)))

        if scale == 1 and image.size <= opts.max_output_bytes:
            logger.debug(f"{image.name} already fits {width}x{height}, {image.size} bytes")
            return image

        canvas = bitmap.resize(target_size, Image.Resampling.LANCZOS) if scale < 1 else bitmap

        is_png = image.content_type == PNG_TYPE or (
            not image.content_type.startswith("image/") and source_format == "PNG"
        )
        target_format = "PNG" if is_png else "JPEG"
        if target_format == "JPEG" and canvas.mode not in ("RGB", "L", "CMYK"):
            canvas = canvas.convert("RGB")

        quality = opts.quality
        exif_bytes = exif.tobytes() if exif is not None else None
        output = self._export(canvas, target_format, quality, exif=exif_bytes)

        if target_format == "JPEG":
            while len(output) > opts.max_output_bytes and quality > opts.quality_floor:
                quality = max(opts.quality_floor, round(quality - opts.quality_step, 4))
                output = self._export(canvas, target_format, quality, exif=exif_bytes)
                logger.debug(f"Re-exported {image.name} at quality {quality:.2f}: {len(output)} bytes")

        if len(output) >= image.size:
            logger.info(f"Optimizing {image.name} did not reduce its size, keeping original")
            return image

        extension = "png" if target_format == "PNG" else "jpg"
        stem = Path(image.name).stem or "image"
        optimized = ImageFile(
            name=f"{stem}-optimized.{extension}",
            data=output,
            content_type=PNG_TYPE if target_format == "PNG" else JPEG_TYPE,
        )
        logger.info(
            f"Optimized {image.name}: {width}x{height} -> {target_size[0]}x{target_size[1]}, "
            f"{image.size} -> {optimized.size} bytes"
        )
        return optimized

    async def optimize_async(self, image: ImageFile, options: OptimizeOptions | None = None) -> ImageFile:
        """Run optimize() in a worker thread. Not cancellable once started."""
        return await asyncio.to_thread(self.optimize, image, options)

    def _load(self, image: ImageFile) -> tuple[Image.Image, str | None, Image.Exif | None]:
        """
        Decode the image without rotating it.

        Returns (bitmap, source format, exif). exif is None unless the image
        carries an orientation tag other than upright.
        """
        try:
            bitmap = Image.open(BytesIO(image.data))
            bitmap.load()
            source_format = bitmap.format
            exif = bitmap.getexif()
            if exif.get(EXIF_ORIENTATION, 1) == 1:
                exif = None
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
            raise ImageOptimizationError(
                f"Failed to load image '{image.name}': {e}",
                details={"file_name": image.name, "original_error": str(e)}
            ) from e
        return bitmap, source_format, exif

    def _export(self, canvas: Image.Image, target_format: str, quality: float,
                exif: bytes | None = None) -> bytes:
        output = BytesIO()
        extra = {"exif": exif} if exif else {}
        try:
            if target_format == "PNG":
                canvas.save(output, format="PNG", optimize=True, **extra)
            else:
                canvas.save(output, format="JPEG", quality=_pillow_quality(quality),
                            optimize=True, **extra)
        except (OSError, ValueError) as e:
            raise ImageOptimizationError(
                f"Failed to encode image as {target_format}: {e}",
                details={"format": target_format, "original_error": str(e)}
            ) from e
        return output.getvalue()


def optimize_image_for_upload(image: ImageFile, **overrides) -> ImageFile:
    """Optimize with default constraints, overriding any OptimizeOptions field by keyword."""
    return ImageOptimizer(OptimizeOptions(**overrides)).optimize(image)
