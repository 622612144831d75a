"""Tests for the silicon command line."""

import functools
import json
import os

import pytest
from typer.testing import CliRunner

from silicon import cli
from silicon.api import SimilarityIndex

runner = CliRunner()


@pytest.fixture
def store_dir(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    (root / "A.md").write_text("alpha")
    (root / "B.md").write_text("bravo")
    (root / "C.md").write_text("charlie")
    return root


@pytest.fixture
def offline(monkeypatch, make_provider):
    """Route the CLI's index through a scripted provider."""
    provider = make_provider({
        "alpha": [1.0, 0.0, 0.0],
        "bravo": [0.9, 0.43589, 0.0],
        "charlie": [0.2, 0.979796, 0.0],
    })
    monkeypatch.setenv("SILICON_OPENAI_API_KEY", "sk-test-1234567890")
    monkeypatch.setattr(
        cli, "SimilarityIndex",
        functools.partial(SimilarityIndex, embedding_provider=provider),
    )
    return provider


def invoke(store_dir, *args):
    return runner.invoke(cli.app, ["--store", str(store_dir), *args])


class TestIndex:
    def test_index_and_similar(self, store_dir, vault, offline):
        result = invoke(store_dir, "index", "--vault", str(vault))
        assert result.exit_code == 0, result.output
        assert "3 embedded" in result.stdout

        result = invoke(store_dir, "--json", "similar", "A.md")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [item["path"] for item in data] == ["B.md"]
        assert data[0]["similarity"] == pytest.approx(0.9, abs=1e-4)

    def test_index_json(self, store_dir, vault, offline):
        result = invoke(store_dir, "--json", "index", "--vault", str(vault))
        assert result.exit_code == 0, result.output
        stats = json.loads(result.stdout)
        assert stats["embedded"] == 3

    def test_similar_text_output(self, store_dir, vault, offline):
        invoke(store_dir, "index", "--vault", str(vault))
        result = invoke(store_dir, "similar", "A.md")
        assert result.exit_code == 0, result.output
        assert "B.md" in result.stdout
        assert "C.md" not in result.stdout

    def test_similar_missing_note(self, store_dir, vault, offline):
        invoke(store_dir, "index", "--vault", str(vault))
        result = invoke(store_dir, "similar", "ghost.md")
        assert result.exit_code == 1

    def test_requires_vault(self, store_dir, offline):
        result = invoke(store_dir, "index")
        assert result.exit_code == 1

    def test_wipe(self, store_dir, vault, offline):
        invoke(store_dir, "index", "--vault", str(vault))
        result = invoke(store_dir, "wipe", "--yes")
        assert result.exit_code == 0, result.output
        assert "3 embedded" in result.stdout

    def test_status(self, store_dir, vault, offline):
        invoke(store_dir, "index", "--vault", str(vault))
        result = invoke(store_dir, "--json", "status")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["records"] == 3

    def test_error_log_follows_store_option(self, tmp_path, store_dir, vault, offline):
        other = tmp_path / "elsewhere"
        invoke(other, "index", "--vault", str(vault))
        note = vault / "A.md"
        note.write_text("alpha edited")
        stat = note.stat()
        os.utime(note, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        offline.fail_on.add("edited")

        result = invoke(other, "similar", "A.md")

        assert result.exit_code == 1
        log = other / "silicon-errors.log"
        assert log.exists()
        assert "similar A.md: EmbeddingProviderError" in log.read_text()
        assert not (store_dir / "silicon-errors.log").exists()


class TestConfigCommand:
    def test_update_and_show(self, store_dir, tmp_path):
        result = invoke(
            store_dir, "--json", "config",
            "--threshold", "0.7", "--ignore", "templates/,daily/",
            "--vault", str(tmp_path),
        )
        assert result.exit_code == 0, result.output
        info = json.loads(result.stdout)
        assert info["threshold"] == 0.7
        assert info["ignore_prefixes"] == ["templates/", "daily/"]
        assert info["api_key"] == "(not set)"

    def test_key_is_masked(self, store_dir):
        result = invoke(store_dir, "--json", "config", "--api-key", "sk-abcdefghijklmnop")
        info = json.loads(result.stdout)
        assert info["api_key"] == "sk-...mnop"
        assert "abcdefghijkl" not in result.stdout

    def test_bad_threshold(self, store_dir):
        result = invoke(store_dir, "config", "--threshold", "2")
        assert result.exit_code == 1

    def test_model_change_warns_about_wipe(self, store_dir):
        result = invoke(store_dir, "config", "--model", "text-embedding-3-small")
        assert result.exit_code == 0, result.output
        assert "silicon wipe --yes" in result.output

    def test_same_model_does_not_warn(self, store_dir):
        invoke(store_dir, "config", "--model", "text-embedding-3-small")
        result = invoke(store_dir, "config", "--model", "text-embedding-3-small")
        assert "silicon wipe" not in result.output


class TestRelevanceWeight:
    def test_below_threshold(self):
        assert cli.relevance_weight(0.3, 0.5, 0.9) == 0.4

    def test_top_is_full_weight(self):
        assert cli.relevance_weight(0.9, 0.5, 0.9) == 1.0

    def test_linear_in_between(self):
        assert cli.relevance_weight(0.7, 0.5, 0.9) == pytest.approx(0.7)

    def test_single_result_at_threshold(self):
        assert cli.relevance_weight(0.5, 0.5, 0.5) == 1.0

    def test_render_empty(self):
        assert cli.render_neighbors([], 0.5) == "No similar notes."
        assert cli.render_neighbors([], 0.5, as_json=True) == "[]"
