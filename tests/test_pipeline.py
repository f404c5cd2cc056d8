import io

import numpy as np
import pytest
from PIL import Image  # type: ignore

from image_resizer import pipeline
from image_resizer.errors import EncodeFailure, NoImageSupplied, ResizeWarning, UnsupportedFormat
from image_resizer.models import Codec, EncodeCandidate, EncodeRequest, OutputFormat, StageResult
from image_resizer.pipeline import resize_image_bytes, resize_to_target


def _decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_small_image_is_padded_to_exact_target(encode):
    source = encode(Image.new("RGB", (10, 10), color=(200, 100, 50)), "PNG")
    result = resize_to_target(source, EncodeRequest.from_kilobytes(100))
    assert result.size == 102400
    assert result.mime_type == "image/png"
    assert result.warnings == ()
    # The original codec stream is an intact prefix of the padded output
    assert _decode(result.data).size == (10, 10)
    assert result.data.rstrip(b"\x00").endswith(b"IEND\xaeB`\x82")


def test_under_budget_skips_search_and_quantizer(encode, monkeypatch):
    def forbidden(*args, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(pipeline, "search_quality", forbidden)
    monkeypatch.setattr(pipeline, "try_quantize", forbidden)
    for fmt in ("PNG", "JPEG"):
        source = encode(Image.new("RGB", (16, 16), color=(1, 2, 3)), fmt)
        result = resize_to_target(source, EncodeRequest.from_kilobytes(50))
        assert result.size == 50 * 1024
        assert not result.quantized


def test_opaque_png_over_budget_runs_quantizer(encode, noise_image, monkeypatch):
    calls = []
    real = pipeline.try_quantize

    def spy(buffer, *args, **kwargs):
        calls.append(buffer.size)
        return real(buffer, *args, **kwargs)

    monkeypatch.setattr(pipeline, "try_quantize", spy)
    source = encode(noise_image(100, 100), "PNG")
    result = resize_to_target(source, EncodeRequest.from_kilobytes(1))

    assert calls == [(100, 100)]
    assert result.mime_type == "image/png"
    assert _decode(result.data).size == (100, 100)
    if ResizeWarning.BUDGET_UNREACHABLE in result.warnings:
        assert result.size > 1024
    else:
        assert result.size == 1024


def test_quantized_result_kept_only_when_smaller(encode, noise_image, monkeypatch):
    source = encode(noise_image(48, 48), "PNG")
    huge = EncodeCandidate(data=b"\x89PNG" + b"\x00" * 10**6)
    monkeypatch.setattr(pipeline, "try_quantize", lambda buffer: StageResult.success(huge))
    result = resize_to_target(source, EncodeRequest.from_kilobytes(1))
    assert not result.quantized
    assert _decode(result.data).size == (48, 48)
    assert ResizeWarning.BUDGET_UNREACHABLE in result.warnings


def test_translucent_png_keeps_clear_pixels_on_lossless_path(encode, noise_image):
    arr = np.array(noise_image(96, 96, mode="RGBA", seed=5))
    arr[:, :32, 3] = 0
    arr[:, 32:64, 3] = 90
    source = encode(Image.fromarray(arr), "PNG")
    result = resize_to_target(source, EncodeRequest.from_kilobytes(1))

    assert result.mime_type == "image/png"
    assert result.quantized
    alpha = np.asarray(_decode(result.data).convert("RGBA"))[..., 3]
    assert np.all(alpha[arr[..., 3] == 0] == 0)
    assert np.all(alpha[arr[..., 3] > 0] > 0)


def test_quantization_failure_degrades_to_baseline(encode, noise_image, monkeypatch):
    source = encode(noise_image(48, 48), "PNG")
    monkeypatch.setattr(pipeline, "try_quantize", lambda buffer: StageResult.failure("boom"))
    result = resize_to_target(source, EncodeRequest.from_kilobytes(1))
    assert ResizeWarning.QUANTIZATION_DEGRADED in result.warnings
    assert ResizeWarning.BUDGET_UNREACHABLE in result.warnings
    decoded = _decode(result.data).convert("RGB")
    # Baseline is lossless
    assert decoded.tobytes() == Image.open(io.BytesIO(source)).convert("RGB").tobytes()


def test_jpeg_over_budget_uses_quality_search(encode, gradient_image):
    source = encode(gradient_image(160, 120), "JPEG", quality=98)
    target_kb = 4
    result = resize_to_target(source, EncodeRequest.from_kilobytes(target_kb))
    assert result.codec is Codec.JPEG
    assert result.quality is not None and result.quality < 100
    assert _decode(result.data).size == (160, 120)
    if ResizeWarning.BUDGET_UNREACHABLE in result.warnings:
        assert result.quality == 10
    else:
        assert result.size == target_kb * 1024


def test_same_input_same_output(encode, gradient_image):
    source = encode(gradient_image(96, 96, seed=7), "PNG")
    first = resize_image_bytes(source, 2, "jpeg")
    second = resize_image_bytes(source, 2, "jpeg")
    assert first.data == second.data
    assert first.quality == second.quality


def test_alpha_image_forced_to_jpeg_is_opaque(translucent_png):
    result = resize_to_target(translucent_png, EncodeRequest(target_bytes=20000, output_format=OutputFormat.LOSSY))
    assert result.mime_type == "image/jpeg"
    assert result.alpha_dropped
    assert ResizeWarning.ALPHA_DROPPED in result.warnings
    decoded = _decode(result.data)
    assert decoded.mode == "RGB"
    alpha = np.asarray(decoded.convert("RGBA"))[..., 3]
    assert alpha.min() == 255


def test_force_lossless_from_jpeg(encode, gradient_image):
    source = encode(gradient_image(20, 20), "JPEG")
    result = resize_image_bytes(source, 64, OutputFormat.LOSSLESS)
    assert result.mime_type == "image/png"
    assert result.input_format == "JPEG"
    assert result.size == 64 * 1024


def test_baseline_encode_failure_is_fatal(encode, monkeypatch):
    def broken(normalized):
        raise EncodeFailure("bad dimensions")

    monkeypatch.setattr(pipeline, "encode_baseline", broken)
    with pytest.raises(EncodeFailure):
        resize_to_target(encode(Image.new("RGB", (4, 4)), "PNG"), EncodeRequest(target_bytes=1024))


def test_input_errors_propagate():
    with pytest.raises(NoImageSupplied):
        resize_to_target(b"", EncodeRequest(target_bytes=1024))
    with pytest.raises(UnsupportedFormat):
        resize_to_target(b"GIF89a....", EncodeRequest(target_bytes=1024))


def test_request_validation():
    with pytest.raises(ValueError):
        EncodeRequest(target_bytes=0)
    assert EncodeRequest.from_kilobytes(3).target_bytes == 3072
    assert OutputFormat.parse("png-equivalent") is OutputFormat.LOSSLESS
    assert OutputFormat.parse("JPG") is OutputFormat.LOSSY
    assert OutputFormat.parse(None) is OutputFormat.AUTO
    with pytest.raises(ValueError):
        OutputFormat.parse("webp")
