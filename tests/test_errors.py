"""Tests for the error log."""

from silicon.errors import EmbeddingProviderError, format_error_entry, log_exception


def _raised(exc):
    try:
        raise exc
    except Exception as e:
        return e


class TestLogException:
    def test_writes_into_given_store(self, tmp_path):
        store = tmp_path / "other-store"
        exc = _raised(EmbeddingProviderError("boom", provider="openai"))

        path = log_exception(exc, "index", store_path=store)

        assert path == store / "silicon-errors.log"
        text = path.read_text()
        assert "index: EmbeddingProviderError" in text
        assert "boom" in text

    def test_falls_back_to_environment(self, tmp_path):
        path = log_exception(_raised(ValueError("bad")))
        assert path == tmp_path / "store" / "silicon-errors.log"
        assert path.exists()

    def test_entries_are_appended(self, tmp_path):
        log_exception(_raised(ValueError("first")), store_path=tmp_path)
        path = log_exception(_raised(ValueError("second")), store_path=tmp_path)
        text = path.read_text()
        assert text.index("first") < text.index("second")
        assert (path.stat().st_mode & 0o777) == 0o600

    def test_unwritable_location_does_not_raise(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        log_exception(_raised(ValueError("x")), store_path=blocker)


class TestFormat:
    def test_entry_has_traceback(self):
        entry = format_error_entry(_raised(KeyError("k")), "similar A.md")
        assert "similar A.md: KeyError" in entry
        assert "Traceback" in entry
