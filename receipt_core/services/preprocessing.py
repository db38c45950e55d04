"""
Image preprocessing for OCR.

Turns an arbitrary phone photo (any orientation, HEIC/AVIF containers,
transparency, low resolution) into a single grayscale PNG tuned for
recognition.
"""

import io
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from ..config import Settings, settings as default_settings
from ..exceptions import ImageConversionError, PreprocessingFailure

logger = logging.getLogger(__name__)

# HEIC/HEIF/AVIF files open through Pillow once the plugin is registered
register_heif_opener()

# ISO-BMFF brands used by HEIF-family containers
HEIF_BRANDS = {
    b'heic', b'heix', b'hevc', b'hevx', b'heim', b'heis',
    b'mif1', b'msf1', b'avif', b'avis',
}

DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def ftyp_brands(data: bytes) -> List[bytes]:
    """
    Major and compatible brands from an ISO-BMFF ``ftyp`` box.

    Returns an empty list when the payload does not start with one.
    """
    if len(data) < 16 or data[4:8] != b'ftyp':
        return []
    box_size = int.from_bytes(data[0:4], 'big')
    box_end = min(max(box_size, 16), len(data), 256)
    brands = [data[8:12]]
    brands.extend(data[i:i + 4] for i in range(16, box_end - 3, 4))
    return [brand.lower() for brand in brands]


def is_exotic_container(data: bytes) -> bool:
    """True for HEIF-family containers or anything Pillow cannot identify."""
    if any(brand in HEIF_BRANDS for brand in ftyp_brands(data)):
        return True
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
        return False
    except DECODE_ERRORS:
        return True


def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


class ImagePreprocessor:
    """
    Image normalisation pipeline for receipt photos.

    Steps, in order: container conversion, EXIF auto-rotate, flatten
    transparency onto white, capped upscale, grayscale, auto-contrast,
    gamma lift, 3x3 median denoise, sharpen.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings
        self.min_width = self.settings.PREPROCESS_MIN_WIDTH
        self.max_upscale_factor = self.settings.PREPROCESS_MAX_UPSCALE
        self.gamma = self.settings.PREPROCESS_GAMMA

    def preprocess(self, image_data: bytes) -> bytes:
        """
        Preprocess raw image bytes for OCR.

        Returns:
            Grayscale PNG bytes

        Raises:
            PreprocessingFailure: empty input, or undecodable even by the
                minimal fallback pass
        """
        png, _ = self.preprocess_with_steps(image_data)
        return png

    def preprocess_with_steps(self, image_data: bytes) -> Tuple[bytes, List[str]]:
        """Same as preprocess(), also returning the names of the applied steps."""
        if not image_data:
            raise PreprocessingFailure("Empty image data provided")

        steps: List[str] = []
        data = image_data
        try:
            if is_exotic_container(data):
                data = self.convert_container(data)
                steps.append('converted_container')

            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                image = opened.copy()

            image = ImageOps.exif_transpose(image)
            steps.append('auto_rotated')

            image, flattened = self._flatten_transparency(image)
            if flattened:
                steps.append('flattened_transparency')

            image, upscale_step = self._upscale_if_needed(image)
            if upscale_step:
                steps.append(upscale_step)

            image = image.convert('L')
            steps.append('grayscale')

            image = ImageOps.autocontrast(image)
            steps.append('autocontrast')

            image = self._gamma_lift(image)
            steps.append(f'gamma_{self.gamma}')

            image = image.filter(ImageFilter.MedianFilter(3))
            steps.append('median_denoise')

            image = image.filter(ImageFilter.SHARPEN)
            steps.append('sharpened')

            png = _encode_png(image)
            logger.info("Image preprocessing completed", extra={'steps': steps, 'size': image.size})
            return png, steps

        except DECODE_ERRORS:
            logger.warning("Image preprocessing failed, using minimal pass", exc_info=True)
            return self._minimal_pass(data), ['minimal_pass']

    def _minimal_pass(self, data: bytes) -> bytes:
        """Auto-rotate and re-encode only."""
        try:
            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                image = ImageOps.exif_transpose(opened.copy())
            if image.mode not in ('1', 'L', 'LA', 'I', 'P', 'RGB', 'RGBA'):
                image = image.convert('RGB')
            return _encode_png(image)
        except DECODE_ERRORS as e:
            logger.error("Minimal preprocessing pass failed", exc_info=True)
            raise PreprocessingFailure(
                "Unable to decode image",
                context={'error': str(e), 'bytes': len(data)},
            ) from e

    def convert_container(self, data: bytes) -> bytes:
        """
        Convert an exotic container to PNG.

        Tries the pillow-heif opener first, then each configured external
        converter (magick, convert, heif-convert) in order.

        Raises:
            ImageConversionError: when nothing could convert the payload
        """
        try:
            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                png = _encode_png(opened)
            logger.debug("Converted container with pillow-heif")
            return png
        except DECODE_ERRORS:
            logger.debug("pillow-heif could not decode payload, trying external converters")

        for converter in self.settings.IMAGE_CONVERTERS:
            png = self._run_converter(converter, data)
            if png:
                logger.info("Converted container", extra={'converter': converter})
                return png

        raise ImageConversionError(
            "No converter could decode the image container",
            context={'brands': [b.decode('ascii', 'replace') for b in ftyp_brands(data)],
                     'converters': list(self.settings.IMAGE_CONVERTERS)},
        )

    def _run_converter(self, converter: str, data: bytes) -> Optional[bytes]:
        executable = shutil.which(converter)
        if not executable:
            logger.debug("Converter not installed: %s", converter)
            return None

        with tempfile.TemporaryDirectory() as workdir:
            source = Path(workdir) / 'input.heic'
            target = Path(workdir) / 'output.png'
            source.write_bytes(data)
            try:
                subprocess.run(
                    [executable, str(source), str(target)],
                    check=True,
                    capture_output=True,
                    timeout=self.settings.IMAGE_CONVERTER_TIMEOUT,
                )
            except (OSError, subprocess.SubprocessError):
                logger.warning("Converter failed: %s", converter, exc_info=True)
                return None
            if not target.exists() or target.stat().st_size == 0:
                logger.warning("Converter produced no output: %s", converter)
                return None
            return target.read_bytes()

    def _flatten_transparency(self, image: Image.Image) -> Tuple[Image.Image, bool]:
        has_alpha = image.mode in ('RGBA', 'LA', 'PA') or (
            image.mode == 'P' and 'transparency' in image.info
        )
        if not has_alpha:
            return image, False
        rgba = image.convert('RGBA')
        background = Image.new('RGB', rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel('A'))
        return background, True

    def _upscale_if_needed(self, image: Image.Image) -> Tuple[Image.Image, Optional[str]]:
        """Scale up narrow photos so glyphs stay legible; never beyond the cap."""
        width, height = image.size
        if width >= self.min_width or width == 0:
            return image, None
        scale_factor = min(self.min_width / width, self.max_upscale_factor)
        new_size = (int(round(width * scale_factor)), int(round(height * scale_factor)))
        logger.debug("Upscaled from %dx%d to %dx%d", width, height, *new_size)
        return image.resize(new_size, Image.Resampling.LANCZOS), f'upscaled_to_{new_size[0]}x{new_size[1]}'

    def _gamma_lift(self, image: Image.Image) -> Image.Image:
        exponent = 1.0 / self.gamma
        table = [round(255 * (value / 255) ** exponent) for value in range(256)]
        return image.point(table)
