import pytest

from errors import UnsupportedFileTypeError
from image_utils import load_image_reference


def test_png_is_accepted_with_preview(png_bytes):
    image = load_image_reference("leaf.png", "image/png", png_bytes)
    assert image.mime_type == "image/png"
    assert image.preview.startswith("data:image/png;base64,")
    assert image.data == png_bytes


def test_missing_mime_type_is_detected(png_bytes):
    image = load_image_reference("leaf", None, png_bytes)
    assert image.mime_type == "image/png"


def test_non_image_mime_type_is_rejected(png_bytes):
    with pytest.raises(UnsupportedFileTypeError):
        load_image_reference("notes.pdf", "application/pdf", png_bytes)


def test_undecodable_bytes_are_rejected():
    with pytest.raises(UnsupportedFileTypeError):
        load_image_reference("fake.jpg", "image/jpeg", b"definitely not a jpeg")


def test_empty_file_is_rejected():
    with pytest.raises(UnsupportedFileTypeError):
        load_image_reference("empty.png", "image/png", b"")
