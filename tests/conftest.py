import io

import pytest
from PIL import Image

from receipt_core.config import Settings


SAMPLE_RECEIPT = """TESCO EXPRESS
12 High Street
London SW1A 1AA
Milk 1.20
Bread 0.95
SUBTOTAL £2.15
TOTAL £2.15
VISA ************1234
12/10/2023 14:32
"""


def make_png(size=(200, 100), mode='RGB', color=(255, 255, 255)) -> bytes:
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def sample_receipt():
    return SAMPLE_RECEIPT


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def make_image():
    return make_png


@pytest.fixture
def offline_settings():
    """Settings with the cloud engine disabled so nothing reaches the network."""
    return Settings(CLOUD_OCR_ENABLED=False, OCR_TIMEOUT_SECONDS=1.0)
