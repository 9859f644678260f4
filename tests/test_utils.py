# tests/test_utils.py
"""Test utilities and helpers"""

from unittest.mock import patch

from spotify_dl.utils import (
    MAX_DELAY,
    build_file_stem,
    calculate_backoff,
    clean_file_name,
    ensure_directory,
    format_duration,
    format_size,
    legacy_file_stem,
)


class TestFileNames:
    """Test file name generation"""

    def test_clean_file_name(self):
        assert clean_file_name("AC/DC - T.N.T.") == "ACDC - TNT"
        assert clean_file_name('Say "What?" <live>') == "Say What live"
        assert clean_file_name("Don't Stop") == "Dont Stop"
        assert clean_file_name("Tab\there") == "Tabhere"

    def test_non_ascii(self):
        """Non-ASCII is kept unless disabled (Windows default)"""
        assert clean_file_name("Beyoncé - Halo", allow_non_ascii=True) == "Beyoncé - Halo"
        assert clean_file_name("Beyoncé - Halo", allow_non_ascii=False) == "Beyonc - Halo"

    def test_build_file_stem(self):
        assert build_file_stem(["Queen"], "Bohemian Rhapsody") == "Queen - Bohemian Rhapsody"
        assert build_file_stem(["A", "B", "C"], "Song") == "A, B, C - Song"
        assert build_file_stem(["A", "B", "C", "D"], "Song") == "A, B, C, and others - Song"

    def test_legacy_file_stem(self):
        assert legacy_file_stem(["A", "B", "C", "D"], "Song") == "A, B, C,  - Song"
        assert legacy_file_stem(["A", "B", "C"], "Song") is None


class TestHelpers:
    """Test helper functions"""

    def test_format_duration(self):
        """Test duration formatting"""
        assert format_duration(90) == "1:30"
        assert format_duration(3661) == "1:01:01"
        assert format_duration(0) == "0:00"
        assert format_duration(-10) == "0:00"

    def test_format_size(self):
        """Test file size formatting"""
        assert format_size(512) == "512 B"
        assert format_size(1024) == "1.0 KB"
        assert format_size(1048576) == "1.0 MB"
        assert format_size(3 * 1024 ** 3) == "3.0 GB"

    def test_calculate_backoff(self):
        with patch("spotify_dl.utils.random.random", return_value=0.5):
            assert calculate_backoff(0, 1.5) == 1.5
            assert calculate_backoff(2, 1.5) == 6.0
            assert calculate_backoff(10, 1.5) == MAX_DELAY
        assert calculate_backoff(3, 0.0) == 0.0

    def test_ensure_directory(self, tmp_path):
        target = tmp_path / "a" / "b"

        assert ensure_directory(target) == target
        assert target.is_dir()
