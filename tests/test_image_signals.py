# tests/test_image_signals.py

import numpy as np
import pytest
from PIL import Image, ImageDraw

from config import SignalWeights
from core.image_signals import (
    ImageDecodeError,
    decode_image,
    prepare_image,
    luminance_histogram_similarity,
    structural_similarity,
    mean_color_similarity,
    shape_similarity,
    pattern_similarity,
    color_histogram_similarity,
    texture_similarity,
    symmetry_similarity,
)
from core.similarity_scorer import SIGNALS, SimilarityScorer
from conftest import encode, noise_image, sideways_photo, solid_image, vase_image


def features(data: bytes, size: int = 64):
    return prepare_image(decode_image(data), size)


def rectangle_image(size=(128, 128)) -> bytes:
    img = Image.new('RGB', size, (235, 230, 220))
    ImageDraw.Draw(img).rectangle([34, 20, 94, 108], fill=(150, 80, 40))
    return encode(img)


@pytest.fixture
def scorer():
    return SimilarityScorer()


def test_decode_rejects_empty_and_garbage():
    """Test that non-image bytes raise ImageDecodeError"""
    with pytest.raises(ImageDecodeError):
        decode_image(b"")
    with pytest.raises(ImageDecodeError):
        decode_image(b"definitely not an image")


def test_decode_converts_grayscale_to_rgb():
    data = encode(Image.new('L', (20, 10), 128))
    rgb = decode_image(data)

    assert rgb.shape == (10, 20, 3)
    assert rgb.dtype == np.uint8


def test_decode_applies_exif_orientation():
    rgb = decode_image(sideways_photo())

    assert rgb.shape == (128, 96, 3)
    # Pot sits upper left once turned upright
    assert rgb[48, 32].mean() < 150
    assert rgb[110, 80].mean() > 200


def test_prepare_resamples_to_working_size():
    prepared = features(noise_image(1, size=(300, 200)), size=32)

    assert prepared.gray.shape == (32, 32)
    assert not prepared.flat


def test_flat_image_has_no_structure():
    prepared = features(solid_image((10, 200, 30)))

    assert prepared.flat
    assert prepared.contour is None
    assert prepared.texture is None


def test_structure_signals_abstain_for_flat_pair():
    a = features(solid_image((255, 0, 0)))
    b = features(solid_image((0, 0, 255)))

    assert structural_similarity(a, b) is None
    assert shape_similarity(a, b) is None
    assert pattern_similarity(a, b) is None
    assert texture_similarity(a, b) is None
    assert symmetry_similarity(a, b) is None


def test_mean_color_black_vs_white_is_zero():
    black = features(solid_image((0, 0, 0)))
    white = features(solid_image((255, 255, 255)))

    assert mean_color_similarity(black, white) == pytest.approx(0.0, abs=1e-6)
    assert luminance_histogram_similarity(black, white) == 0.0


def test_color_histogram_tolerates_brightness_shift():
    """Glaze that fired 20 levels lighter still matches on colour distribution"""
    darker = features(solid_image((100, 100, 100)))
    lighter = features(solid_image((120, 120, 120)))

    assert luminance_histogram_similarity(darker, lighter) == 0.0
    assert color_histogram_similarity(darker, lighter) == pytest.approx(1.0)


def test_shape_distinguishes_outlines():
    ellipse = features(vase_image())
    rectangle = features(rectangle_image())

    assert shape_similarity(ellipse, ellipse) == pytest.approx(1.0)
    assert shape_similarity(ellipse, rectangle) < 1.0


def test_shape_is_zero_when_only_one_side_has_an_outline():
    vase = features(vase_image())
    flat = features(solid_image((120, 120, 120)))

    assert shape_similarity(vase, flat) == 0.0
    assert symmetry_similarity(vase, flat) is None


def test_symmetric_piece_matches_itself():
    vase = features(vase_image())

    assert vase.symmetry > 0.95
    assert symmetry_similarity(vase, vase) == pytest.approx(1.0)


def test_every_signal_stays_in_unit_interval():
    images = [
        features(noise_image(1)),
        features(noise_image(2)),
        features(vase_image()),
        features(rectangle_image()),
        features(solid_image((0, 0, 0))),
        features(solid_image((255, 255, 255))),
    ]

    for a in images:
        for b in images:
            for name, signal in SIGNALS.items():
                value = signal(a, b)
                assert value is None or 0.0 <= value <= 1.0, name


def test_identical_noise_scores_at_least_095(scorer):
    data = noise_image(7)
    a = scorer.prepare(data)
    b = scorer.prepare(data)

    assert scorer.score(a, b) >= 0.95


def test_black_vs_white_below_threshold(scorer):
    breakdown = scorer.compare(solid_image((0, 0, 0)), solid_image((255, 255, 255)))

    assert breakdown.signals['mean_color'] == pytest.approx(0.0, abs=1e-6)
    assert breakdown.score < 0.45


def test_red_vs_red_and_red_vs_blue(scorer):
    red = solid_image((255, 0, 0))

    assert scorer.compare(red, solid_image((255, 0, 0))).score >= 0.9
    assert scorer.compare(red, solid_image((0, 0, 255))).score < 0.45


def test_red_from_large_image_still_matches(scorer):
    large = solid_image((255, 0, 0), size=(500, 500))
    small = solid_image((255, 0, 0), size=(64, 64))

    assert scorer.compare(large, small).score >= 0.85


def test_recompressed_photo_still_matches(scorer):
    original = vase_image()
    reencoded = vase_image(fmt='JPEG')

    assert scorer.compare(original, reencoded).score > 0.45


def test_combined_score_in_unit_interval(scorer):
    samples = [noise_image(3), vase_image(), rectangle_image(),
               solid_image((0, 0, 0)), solid_image((40, 200, 90))]

    for a in samples:
        for b in samples:
            assert 0.0 <= scorer.compare(a, b).score <= 1.0


def test_combine_renormalises_and_rescues(scorer):
    # Only one contributing signal: its own value wins
    assert scorer.combine({'mean_color': 0.5, 'structural': None}) == pytest.approx(0.5)
    assert scorer.combine({'structural': None}) == 0.0

    # Weak signals are lifted to 70% of the strongest one
    combined = scorer.combine({
        'luminance_histogram': 0.0,
        'mean_color': 0.0,
        'color_histogram': 1.0,
    })
    assert combined == pytest.approx(0.7)


def test_basic_weights_only_evaluate_three_signals():
    scorer = SimilarityScorer(weights=SignalWeights.basic())
    breakdown = scorer.compare(noise_image(1), noise_image(1))

    assert set(breakdown.signals) == {'luminance_histogram', 'structural', 'mean_color'}
    assert breakdown.score == pytest.approx(1.0)


@pytest.mark.parametrize("kwargs", [
    {'working_size': 60},
    {'working_size': 8},
    {'weights': SignalWeights(luminance_histogram=-0.1)},
    {'weights': SignalWeights(0, 0, 0, 0, 0, 0, 0, 0)},
    {'rescue_factor': 1.5},
])
def test_scorer_rejects_bad_configuration(kwargs):
    with pytest.raises(ValueError):
        SimilarityScorer(**kwargs)
