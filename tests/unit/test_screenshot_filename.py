#!/usr/bin/env python3
"""
Unit tests for screenshot filename generation and file saving
"""

import base64
from datetime import datetime

import pytest

from bridge.errors import MalformedResponseError
from bridge.screenshots import ScreenshotStore, decode_image, sanitize_filename

from conftest import TEST_PNG_BASE64


class Clock:
    """Settable clock for date-rollover tests"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestScreenshotFilename:
    """Test screenshot filename functionality"""

    @pytest.fixture
    def clock(self):
        return Clock(datetime(2025, 1, 15, 10, 0))

    @pytest.fixture
    def store(self, tmp_path, clock):
        return ScreenshotStore(str(tmp_path / "shots"), clock=clock)

    def test_sequence_increments(self, store):
        assert store.next_filename() == "screenshot_2025-01-15_0001.png"
        assert store.next_filename() == "screenshot_2025-01-15_0002.png"

    def test_selector_and_full_page_share_sequence(self, store):
        assert store.next_filename("#main .card") == "screenshot_main_card_2025-01-15_0001.png"
        assert store.next_filename(full_page=True) == "screenshot_fullpage_2025-01-15_0002.png"
        assert (store.next_filename("header", True)
                == "screenshot_header_fullpage_2025-01-15_0003.png")

    def test_selector_that_sanitizes_to_nothing(self, store):
        assert store.next_filename("###") == "screenshot_2025-01-15_0001.png"

    def test_new_day_restarts_sequence(self, store, clock):
        store.next_filename()
        store.next_filename()
        clock.now = datetime(2025, 1, 16, 0, 0, 1)
        assert store.next_filename() == "screenshot_2025-01-16_0001.png"

    def test_resumes_from_files_on_disk(self, tmp_path, clock):
        directory = tmp_path / "shots"
        directory.mkdir()
        (directory / "screenshot_2025-01-15_0007.png").write_bytes(b"x")
        (directory / "screenshot_nav_fullpage_2025-01-15_0003.png").write_bytes(b"x")
        (directory / "screenshot_2025-01-14_0042.png").write_bytes(b"x")

        store = ScreenshotStore(str(directory), clock=clock)
        assert store.next_filename() == "screenshot_2025-01-15_0008.png"

    def test_save_writes_file(self, store, tmp_path, png_data_url):
        saved = store.save(png_data_url, selector="button.submit")

        assert saved["filename"] == "screenshot_button_submit_2025-01-15_0001.png"
        with open(saved["path"], "rb") as f:
            assert f.read() == base64.b64decode(TEST_PNG_BASE64)
        assert saved["size"] == len(base64.b64decode(TEST_PNG_BASE64))
        assert saved["path"].startswith(str(tmp_path))

    def test_consecutive_saves(self, store, png_data_url):
        first = store.save(png_data_url)
        second = store.save(png_data_url)
        assert first["filename"].endswith("_0001.png")
        assert second["filename"].endswith("_0002.png")


class TestImageDecoding:

    def test_data_url(self, png_data_url):
        assert decode_image(png_data_url)[:4] == b"\x89PNG"

    def test_bare_base64(self):
        assert decode_image(TEST_PNG_BASE64)[:4] == b"\x89PNG"

    @pytest.mark.parametrize("data", [None, "", "data:image/png;base64,", "not base64 at all!"])
    def test_invalid_data(self, data):
        with pytest.raises(MalformedResponseError):
            decode_image(data)


class TestSanitizeFilename:

    @pytest.mark.parametrize("name,expected", [
        ("#login-form", "login-form"),
        ("div > span", "div_span"),
        ("a[href='x']", "a_href_x"),
        ("  spaced   out  ", "spaced_out"),
        ("C:\\path/to*file?", "C_path_to_file"),
    ])
    def test_unsafe_characters(self, name, expected):
        assert sanitize_filename(name) == expected

    def test_length_limit(self):
        assert len(sanitize_filename("a" * 80)) == 50
