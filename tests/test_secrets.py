"""
Tests for secret lookup.
"""
import pytest

from bookapi.utils.secrets import get_secret, mask_secret


@pytest.fixture(autouse=True)
def clear_secret_cache():
    get_secret.cache_clear()
    yield
    get_secret.cache_clear()


class TestGetSecret:

    def test_file_beats_environment(self, tmp_path, monkeypatch):
        secret_file = tmp_path / "admin_password"
        secret_file.write_text("from-file\n")
        monkeypatch.setenv("BOOKAPI_TEST_SECRET_FILE", str(secret_file))
        monkeypatch.setenv("BOOKAPI_TEST_SECRET", "from-env")

        assert get_secret("BOOKAPI_TEST_SECRET") == "from-file"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("BOOKAPI_TEST_SECRET", "from-env")

        assert get_secret("BOOKAPI_TEST_SECRET") == "from-env"

    def test_missing_file_falls_through(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BOOKAPI_TEST_SECRET_FILE", str(tmp_path / "nope"))
        monkeypatch.setenv("BOOKAPI_TEST_SECRET", "from-env")

        assert get_secret("BOOKAPI_TEST_SECRET") == "from-env"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("BOOKAPI_TEST_SECRET", raising=False)

        assert get_secret("BOOKAPI_TEST_SECRET", "fallback") == "fallback"


class TestMaskSecret:

    def test_long_secret(self):
        assert mask_secret("abcdefghijklmnop") == "abcd...mnop"

    def test_short_secret(self):
        assert mask_secret("short") == "***"
        assert mask_secret("") == "***"
