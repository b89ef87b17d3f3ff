"""Tests for screenshot encoding and storage."""

import io

from PIL import Image

from axe_reporter.images import (
    capture_type_for,
    detect_image_format,
    encode_screenshot,
    save_screenshot,
    screenshot_extension,
)


def make_png(size=(8, 8)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_capture_type_for():
    assert capture_type_for("png") == "png"
    assert capture_type_for("jpeg") == "jpeg"
    assert capture_type_for("webp") == "png"


def test_detect_image_format():
    assert detect_image_format(make_png()) == "png"
    assert detect_image_format(b"plain text") is None


def test_jpeg_extension_is_short():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="JPEG")
    assert detect_image_format(buffer.getvalue()) == "jpg"


def test_extension_falls_back_to_requested_format():
    assert screenshot_extension(b"????", "jpeg") == "jpg"
    assert screenshot_extension(b"????", "unknown") == "png"


def test_encode_webp():
    encoded = encode_screenshot(make_png(), "webp", 80)
    assert detect_image_format(encoded) == "webp"
    with Image.open(io.BytesIO(encoded)) as image:
        assert image.size == (8, 8)


def test_native_formats_pass_through():
    data = make_png()
    assert encode_screenshot(data, "png", 80) is data


def test_save_screenshot(tmp_path):
    path = save_screenshot(make_png(), tmp_path / "images", "example-com", "webp")
    assert path == tmp_path / "images" / "example-com.png"
    assert path.read_bytes()[:4] == b"\x89PNG"
