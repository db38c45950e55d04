"""
Tests for the image preprocessing pipeline.

Images are synthesised with Pillow; external converters and subprocess are
mocked.
"""

import io
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from receipt_core.config import Settings
from receipt_core.exceptions import ImageConversionError, PreprocessingFailure
from receipt_core.services.preprocessing import (
    ImagePreprocessor,
    ftyp_brands,
    is_exotic_container,
)

HEIC_HEADER = b'\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic'


def _open(png: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(png))
    image.load()
    return image


class TestPipeline:

    def test_output_is_grayscale_png(self, png_bytes):
        png, steps = ImagePreprocessor().preprocess_with_steps(png_bytes)
        image = _open(png)

        assert image.format == 'PNG'
        assert image.mode == 'L'
        assert steps[:2] == ['auto_rotated', 'upscaled_to_500x250']
        assert steps[-3:] == ['gamma_1.1', 'median_denoise', 'sharpened']

    def test_upscale_is_capped(self, png_bytes):
        png = ImagePreprocessor().preprocess(png_bytes)
        # 200 px wide needs 7x to reach 1400; the cap is 2.5x
        assert _open(png).size == (500, 250)

    def test_wide_images_are_not_upscaled(self, make_image):
        png, steps = ImagePreprocessor().preprocess_with_steps(make_image(size=(1600, 400)))
        assert _open(png).size == (1600, 400)
        assert not any(step.startswith('upscaled') for step in steps)

    def test_transparency_flattened_onto_white(self, make_image):
        transparent = make_image(size=(100, 100), mode='RGBA', color=(0, 0, 0, 0))
        png, steps = ImagePreprocessor().preprocess_with_steps(transparent)

        assert 'flattened_transparency' in steps
        # Fully transparent pixels end up white, not black
        assert _open(png).getpixel((10, 10)) > 200

    def test_configurable_target_width(self, png_bytes):
        config = Settings(PREPROCESS_MIN_WIDTH=300, PREPROCESS_MAX_UPSCALE=4.0)
        png = ImagePreprocessor(config).preprocess(png_bytes)
        assert _open(png).size == (300, 150)

    @pytest.mark.parametrize('image_format', ['PNG', 'JPEG'])
    def test_exif_orientation_is_applied(self, image_format):
        exif = Image.Exif()
        exif[0x0112] = 6  # rotated 90 degrees clockwise
        buffer = io.BytesIO()
        Image.new('RGB', (1600, 400), (255, 255, 255)).save(buffer, format=image_format, exif=exif.tobytes())

        config = Settings(PREPROCESS_MIN_WIDTH=100)
        png, steps = ImagePreprocessor(config).preprocess_with_steps(buffer.getvalue())

        assert _open(png).size == (400, 1600), "portrait receipt must be stood upright"
        assert 'auto_rotated' in steps

    def test_no_orientation_keeps_dimensions(self):
        buffer = io.BytesIO()
        Image.new('RGB', (1600, 400), (255, 255, 255)).save(buffer, format='JPEG')
        png = ImagePreprocessor(Settings(PREPROCESS_MIN_WIDTH=100)).preprocess(buffer.getvalue())
        assert _open(png).size == (1600, 400)

    def test_empty_input_fails_immediately(self):
        with pytest.raises(PreprocessingFailure):
            ImagePreprocessor().preprocess(b'')

    def test_step_failure_falls_back_to_minimal_pass(self, png_bytes):
        with patch.object(ImagePreprocessor, '_gamma_lift', side_effect=OSError('boom')):
            png, steps = ImagePreprocessor().preprocess_with_steps(png_bytes)

        assert steps == ['minimal_pass']
        assert _open(png).size == (200, 100)

    def test_undecodable_input_raises(self):
        with patch('receipt_core.services.preprocessing.shutil.which', return_value=None):
            with pytest.raises(PreprocessingFailure):
                ImagePreprocessor().preprocess(b'definitely not an image')


class TestContainers:

    def test_ftyp_brands(self):
        assert ftyp_brands(HEIC_HEADER) == [b'heic', b'mif1', b'heic']
        assert ftyp_brands(b'\x89PNG\r\n\x1a\n' + b'\x00' * 16) == []

    def test_exotic_detection(self, png_bytes):
        assert is_exotic_container(HEIC_HEADER + b'\x00' * 32)
        assert is_exotic_container(b'garbage bytes')
        assert not is_exotic_container(png_bytes)

    def test_converters_tried_in_order(self, png_bytes):
        preprocessor = ImagePreprocessor()
        with patch.object(ImagePreprocessor, '_run_converter', side_effect=[None, png_bytes]) as run:
            converted = preprocessor.convert_container(b'garbage bytes')

        assert converted == png_bytes
        assert [c.args[0] for c in run.call_args_list] == ['magick', 'convert']

    def test_no_converter_available(self):
        with patch.object(ImagePreprocessor, '_run_converter', return_value=None):
            with pytest.raises(ImageConversionError):
                ImagePreprocessor().convert_container(b'garbage bytes')

    def test_converted_container_runs_full_pipeline(self, png_bytes):
        with patch.object(ImagePreprocessor, '_run_converter', return_value=png_bytes):
            png, steps = ImagePreprocessor().preprocess_with_steps(b'garbage bytes')

        assert steps[0] == 'converted_container'
        assert _open(png).mode == 'L'

    def test_run_converter_invokes_cli(self, png_bytes):
        def fake_run(cmd, **kwargs):
            Path(cmd[2]).write_bytes(png_bytes)
            return subprocess.CompletedProcess(cmd, 0)

        with patch('receipt_core.services.preprocessing.shutil.which', return_value='/usr/bin/magick'), \
                patch('receipt_core.services.preprocessing.subprocess.run', side_effect=fake_run) as run:
            output = ImagePreprocessor()._run_converter('magick', HEIC_HEADER)

        assert output == png_bytes
        cmd = run.call_args.args[0]
        assert cmd[0] == '/usr/bin/magick'
        assert cmd[1].endswith('input.heic') and cmd[2].endswith('output.png')
        assert run.call_args.kwargs['timeout'] == 60.0

    def test_run_converter_failure_returns_none(self):
        error = subprocess.CalledProcessError(1, ['magick'])
        with patch('receipt_core.services.preprocessing.shutil.which', return_value='/usr/bin/magick'), \
                patch('receipt_core.services.preprocessing.subprocess.run', side_effect=error):
            assert ImagePreprocessor()._run_converter('magick', HEIC_HEADER) is None

    def test_missing_converter_returns_none(self):
        with patch('receipt_core.services.preprocessing.shutil.which', return_value=None):
            assert ImagePreprocessor()._run_converter('heif-convert', HEIC_HEADER) is None
