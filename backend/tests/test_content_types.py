from datetime import datetime, timedelta

import pytest

from vaultshare.services.content_types import content_class, expiry_window, file_category, is_video

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.mark.parametrize(
    "file_type, file_name, expected",
    [
        ("video/mp4", "clip.bin", True),
        (None, "Clip.MOV", True),
        ("application/octet-stream", "clip.webm", True),
        ("application/pdf", "report.pdf", False),
        (None, "notes", False),
    ],
)
def test_is_video(file_type, file_name, expected):
    assert is_video(file_type, file_name) is expected


def test_content_class():
    assert content_class("video/quicktime", "a.mov") == "video"
    assert content_class("image/png", "a.png") == "document"


@pytest.mark.parametrize(
    "file_type, file_name, expected",
    [
        ("application/pdf", "x", "pdf"),
        ("image/jpeg", "x", "image"),
        ("audio/mpeg", "x", "audio"),
        ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "x", "document"),
        (None, "slides.pptx", "document"),
        (None, "photo.HEIC", "image"),
        ("", "archive.zip", "other"),
    ],
)
def test_file_category(file_type, file_name, expected):
    assert file_category(file_type, file_name) == expected


def test_video_window_capped_by_link_expiry():
    expires_at = NOW + timedelta(seconds=10_000)
    assert expiry_window(True, expires_at, NOW) == 10_000


def test_default_windows_without_link_expiry():
    assert expiry_window(True, None, NOW) == 21_600
    assert expiry_window(False, None, NOW) == 86_400


def test_far_link_expiry_keeps_default():
    assert expiry_window(False, NOW + timedelta(days=30), NOW) == 86_400


def test_window_never_drops_below_one_second():
    assert expiry_window(False, NOW - timedelta(seconds=5), NOW) == 1
