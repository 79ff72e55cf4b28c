# core/image_signals.py

"""
Partial similarity signals for comparing two photos.

Every signal takes two prepared images and returns a score in [0, 1]
(higher means more alike), or None when neither image carries the feature
the signal looks at (for example two flat colour fields have no contour).
"""

import io
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError
from skimage.feature import graycomatrix, graycoprops
from skimage.filters import threshold_otsu

GRAY_WEIGHTS = np.array([0.299, 0.587, 0.114])
FLAT_STD = 2.0  # Grey std below which an image has no usable structure
MAX_COLOR_DISTANCE = float(np.sqrt(3 * 255.0 ** 2))
SSIM_C1 = (0.01 * 255) ** 2
SSIM_C2 = (0.03 * 255) ** 2

COLOR_BINS = 32
BRIGHTNESS_OFFSETS = tuple(range(-40, 41, 10))  # Kiln firing shifts glaze brightness
PATTERN_GRID = 8
CONTOUR_POINTS = 64
FOURIER_COEFFS = 12
CONTOUR_SCALE = 5.0
GLCM_LEVELS = 32


class ImageDecodeError(ValueError):
    """Raised when bytes cannot be decoded into a raster"""


@dataclass
class ImageFeatures:
    """Resampled raster plus the per-image features the signals compare"""
    rgb: np.ndarray
    gray: np.ndarray
    flat: bool
    luminance_hist: np.ndarray
    mean_color: np.ndarray
    color_hist: np.ndarray
    contour: Optional[np.ndarray]
    block_std: np.ndarray
    texture: Optional[np.ndarray]
    symmetry: float


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG/WebP bytes into an upright RGB uint8 array"""
    if not data:
        raise ImageDecodeError("Empty image data")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgb = ImageOps.exif_transpose(img).convert('RGB')
    except (UnidentifiedImageError, Image.DecompressionBombError,
            OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e

    return np.asarray(rgb, dtype=np.uint8)


def prepare_image(rgb: np.ndarray, size: int) -> ImageFeatures:
    """
    Resample to a size x size working raster and extract features

    Args:
        rgb: RGB uint8 array of any dimensions
        size: Working resolution, must be a multiple of the pattern grid

    Returns:
        ImageFeatures for the resampled image
    """
    resized = cv2.resize(rgb, (size, size), interpolation=cv2.INTER_AREA)
    rgb_f = resized.astype(np.float64)
    gray = rgb_f @ GRAY_WEIGHTS
    flat = bool(gray.std() < FLAT_STD)

    return ImageFeatures(
        rgb=rgb_f,
        gray=gray,
        flat=flat,
        luminance_hist=_luminance_histogram(gray),
        mean_color=rgb_f.reshape(-1, 3).mean(axis=0),
        color_hist=_channel_histograms(rgb_f),
        contour=None if flat else _contour_descriptor(gray),
        block_std=_block_std(gray),
        texture=None if flat else _texture_features(gray),
        symmetry=_symmetry(gray)
    )


# Signals

def luminance_histogram_similarity(a: ImageFeatures, b: ImageFeatures) -> float:
    """Intersection of normalised 256-bin grey histograms"""
    return _clip01(np.minimum(a.luminance_hist, b.luminance_hist).sum())


def structural_similarity(a: ImageFeatures, b: ImageFeatures) -> Optional[float]:
    """Single-window SSIM over the whole resampled grey image"""
    if a.flat and b.flat:
        return None

    mean_a, mean_b = a.gray.mean(), b.gray.mean()
    var_a, var_b = a.gray.var(), b.gray.var()
    covar = ((a.gray - mean_a) * (b.gray - mean_b)).mean()

    numerator = (2 * mean_a * mean_b + SSIM_C1) * (2 * covar + SSIM_C2)
    denominator = (mean_a ** 2 + mean_b ** 2 + SSIM_C1) * (var_a + var_b + SSIM_C2)

    return _clip01(numerator / denominator) if denominator > 0 else 0.0


def mean_color_similarity(a: ImageFeatures, b: ImageFeatures) -> float:
    """Inverted Euclidean distance between average RGB colours"""
    distance = np.linalg.norm(a.mean_color - b.mean_color)
    return _clip01(1.0 - distance / MAX_COLOR_DISTANCE)


def shape_similarity(a: ImageFeatures, b: ImageFeatures) -> Optional[float]:
    """Compare silhouette outlines through coarse Fourier descriptors"""
    if a.contour is None and b.contour is None:
        return None
    if a.contour is None or b.contour is None:
        return 0.0

    distance = np.linalg.norm(a.contour - b.contour) / np.sqrt(len(a.contour))
    return _clip01(1.0 / (1.0 + CONTOUR_SCALE * distance))


def pattern_similarity(a: ImageFeatures, b: ImageFeatures) -> Optional[float]:
    """Compare where detail sits in the image via blocked variance"""
    total_a, total_b = a.block_std.sum(), b.block_std.sum()

    if total_a < 1e-9 and total_b < 1e-9:
        return None
    if total_a < 1e-9 or total_b < 1e-9:
        return 0.0

    return _clip01(np.minimum(a.block_std / total_a, b.block_std / total_b).sum())


def color_histogram_similarity(a: ImageFeatures, b: ImageFeatures) -> float:
    """
    Per-channel colour histogram intersection, best over a brightness sweep

    The first image is shifted by each offset so glaze that fired lighter or
    darker still lines up with its earlier photo.
    """
    best = 0.0
    for offset in BRIGHTNESS_OFFSETS:
        shifted = np.clip(a.rgb + offset, 0, 255)
        hist = _channel_histograms(shifted)
        score = np.minimum(hist, b.color_hist).sum(axis=1).mean()
        best = max(best, score)
    return _clip01(best)


def texture_similarity(a: ImageFeatures, b: ImageFeatures) -> Optional[float]:
    """Compare grey-level co-occurrence properties (clay grain, glaze texture)"""
    if a.texture is None and b.texture is None:
        return None
    if a.texture is None or b.texture is None:
        return 0.0

    return _clip01(1.0 - np.abs(a.texture - b.texture).mean())


def symmetry_similarity(a: ImageFeatures, b: ImageFeatures) -> Optional[float]:
    """Compare how left-right symmetric each piece is"""
    # A flat image is trivially symmetric
    if a.flat or b.flat:
        return None
    return _clip01(1.0 - abs(a.symmetry - b.symmetry))


# Feature extraction helpers

def _clip01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _to_uint8(gray: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def _luminance_histogram(gray: np.ndarray) -> np.ndarray:
    counts = np.bincount(_to_uint8(gray).ravel(), minlength=256)
    return counts / gray.size


def _channel_histograms(rgb: np.ndarray) -> np.ndarray:
    pixels = rgb.reshape(-1, 3)
    hists = [
        np.histogram(pixels[:, c], bins=COLOR_BINS, range=(0, 256))[0]
        for c in range(3)
    ]
    return np.array(hists, dtype=np.float64) / len(pixels)


def _contour_descriptor(gray: np.ndarray) -> Optional[np.ndarray]:
    """Fourier descriptor magnitudes of the largest thresholded outline"""
    blurred = cv2.GaussianBlur(_to_uint8(gray), (3, 3), 0)
    if blurred.min() == blurred.max():
        return None

    mask = (blurred > threshold_otsu(blurred)).astype(np.uint8)
    # Treat the minority class as the object
    if mask.mean() > 0.5:
        mask = 1 - mask

    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
    if not contours:
        return None

    points = max(contours, key=cv2.contourArea).reshape(-1, 2).astype(np.float64)
    if len(points) < 8:
        return None

    idx = np.linspace(0, len(points), CONTOUR_POINTS, endpoint=False).astype(int)
    outline = points[idx, 0] + 1j * points[idx, 1]
    coeffs = np.fft.fft(outline)

    # Pair +k/-k so the descriptor ignores contour direction
    k = FOURIER_COEFFS
    magnitudes = np.abs(coeffs[1:k + 1]) + np.abs(coeffs[-1:-k - 1:-1])
    scale = magnitudes.max()
    if scale < 1e-9:
        return None

    return magnitudes / scale


def _block_std(gray: np.ndarray) -> np.ndarray:
    block = gray.shape[0] // PATTERN_GRID
    span = block * PATTERN_GRID
    blocks = gray[:span, :span].reshape(PATTERN_GRID, block, PATTERN_GRID, block)
    return blocks.std(axis=(1, 3)).ravel()


def _texture_features(gray: np.ndarray) -> np.ndarray:
    quantized = (_to_uint8(gray) // (256 // GLCM_LEVELS)).astype(np.uint8)
    glcm = graycomatrix(
        quantized,
        distances=[1],
        angles=[0, np.pi / 2],
        levels=GLCM_LEVELS,
        symmetric=True,
        normed=True
    )

    contrast = np.sqrt(graycoprops(glcm, 'contrast').mean()) / (GLCM_LEVELS - 1)
    homogeneity = graycoprops(glcm, 'homogeneity').mean()
    energy = graycoprops(glcm, 'energy').mean()
    correlation = (graycoprops(glcm, 'correlation').mean() + 1) / 2

    features = np.array([contrast, homogeneity, energy, correlation])
    return np.clip(np.nan_to_num(features, nan=1.0), 0.0, 1.0)


def _symmetry(gray: np.ndarray) -> float:
    return 1.0 - float(np.abs(gray - gray[:, ::-1]).mean()) / 255.0
