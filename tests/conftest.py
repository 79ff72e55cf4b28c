# tests/conftest.py

import base64
import io
import zipfile

import numpy as np
import pytest
from PIL import Image, ImageDraw

from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase


def encode(img: Image.Image, fmt: str = 'PNG') -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def encode_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def archive_names(archive_bytes: bytes):
    """Entry names in a ZIP archive"""
    with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
        return archive.namelist()


def solid_image(color, size=(64, 64), fmt='PNG') -> bytes:
    """Single-colour image bytes"""
    return encode(Image.new('RGB', size, color), fmt)


def noise_image(seed: int, size=(96, 96), fmt='PNG') -> bytes:
    """Random RGB noise; the same seed always gives the same image"""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8)
    return encode(Image.fromarray(pixels), fmt)


def vase_image(width: int = 40, color=(150, 80, 40), size=(128, 128), fmt='PNG') -> bytes:
    """A dark ellipse on a light background, roughly a pot photographed head-on"""
    img = Image.new('RGB', size, (235, 230, 220))
    draw = ImageDraw.Draw(img)
    cx, cy = size[0] // 2, size[1] // 2
    draw.ellipse([cx - width, cy - 50, cx + width, cy + 50], fill=color)
    return encode(img, fmt)



def sideways_photo(size=(96, 128)) -> bytes:
    """
    JPEG stored sideways with EXIF Orientation=6, the way phones save portrait shots

    Viewed upright it is a dark pot in the upper left of a light frame.
    """
    upright = Image.new('RGB', size, (235, 230, 220))
    ImageDraw.Draw(upright).ellipse([8, 8, 56, 88], fill=(150, 80, 40))
    exif = Image.Exif()
    exif[0x0112] = 6
    buffer = io.BytesIO()
    upright.transpose(Image.Transpose.ROTATE_90).save(
        buffer, format='JPEG', quality=95, exif=exif.tobytes())
    return buffer.getvalue()


@pytest.fixture
def database(tmp_path):
    db = CustomerDatabase(str(tmp_path / "studio.db")).open()
    yield db
    db.close()


@pytest.fixture
def blob_store(tmp_path):
    return ImageBlobStore(root_dir=str(tmp_path / "uploads")).initialize()


@pytest.fixture
def customer_fields():
    return {
        'name': '김도예',
        'phone': '010-1234-5678',
        'email': 'clay@example.com',
        'work_date': '2025-06-11',
        'program_type': 'painting',
    }
