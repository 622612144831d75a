"""
CLI interface for the similarity index.

Usage:
    silicon index --vault ~/notes
    silicon similar ideas/gardening.md
    silicon wipe
    silicon config --threshold 0.6
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import SimilarityIndex
from .config import (
    IndexConfig,
    clean_prefixes,
    get_default_store_path,
    load_or_create_config,
    save_config,
    validate_threshold,
)
from .errors import EmbeddingProviderError, SiliconError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Neighbor

NO_API_KEY_WARNING = (
    "No API key configured. Set SILICON_OPENAI_API_KEY (or OPENAI_API_KEY),\n"
    "or store one with: silicon config --api-key <key>"
)

MODEL_CHANGE_WARNING = (
    "Embedding model changed. Stored vectors come from the old model;\n"
    "run: silicon wipe --yes"
)

# Set SILICON_VERBOSE=1 to enable debug mode via environment
if os.environ.get("SILICON_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"silicon {version('silicon-index')}")
        raise typer.Exit()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="silicon",
    help="Find notes similar to the one you are reading.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="SILICON_STORE_PATH",
        help="Path to the store directory (default: ~/.silicon/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Find notes similar to the one you are reading."""


VaultOption = Annotated[
    Optional[Path],
    typer.Option(
        "--vault",
        help="Notes directory (saved to config when given)",
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _store_path() -> Path:
    if _store_override is not None:
        return _store_override.expanduser().resolve()
    return get_default_store_path()


def _load_config() -> IndexConfig:
    try:
        return load_or_create_config(_store_path())
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _get_index(vault: Optional[Path] = None) -> SimilarityIndex:
    """Open the index, saving a newly given vault path first."""
    import atexit

    config = _load_config()
    if vault is not None:
        config.vault = vault.expanduser().resolve()
        save_config(config)
    if config.vault is None:
        typer.echo("Error: no vault configured. Use --vault PATH.", err=True)
        raise typer.Exit(1)
    if not config.api_key_configured:
        typer.echo(NO_API_KEY_WARNING, err=True)

    try:
        index = SimilarityIndex(config=config)
    except Exception as e:
        log_path = log_exception(e, "open index", store_path=_store_path())
        typer.echo(f"Error: {e} (details in {log_path})", err=True)
        raise typer.Exit(1)
    atexit.register(index.close)
    return index


def _fail(e: Exception, context: str):
    log_path = log_exception(e, context, store_path=_store_path())
    typer.echo(f"Error: {e}", err=True)
    typer.echo(f"Details: {log_path}", err=True)
    raise typer.Exit(1)


def relevance_weight(similarity: float, threshold: float, top: float) -> float:
    """
    Display weight for a result: 0.4 at or below the threshold, rising
    linearly to 1.0 at the best result's similarity.
    """
    if similarity < threshold:
        return 0.4
    if similarity >= top or top <= threshold:
        return 1.0
    return 0.4 + 0.6 * (similarity - threshold) / (top - threshold)


def render_neighbors(neighbors: list[Neighbor], threshold: float, as_json: bool = False) -> str:
    """Format query results for the terminal or as JSON."""
    if as_json:
        return json.dumps([n.to_dict() for n in neighbors], indent=2, ensure_ascii=False)
    if not neighbors:
        return "No similar notes."

    top = neighbors[0].similarity
    bar_width = 10
    lines = []
    for n in neighbors:
        weight = relevance_weight(n.similarity, threshold, top)
        bar = "#" * max(1, round(weight * bar_width))
        lines.append(f"{n.similarity:.3f}  {bar:<{bar_width}}  {n.identity}")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("index")
def index_cmd(vault: VaultOption = None):
    """Embed new and changed notes; drop records for deleted notes."""
    index = _get_index(vault)
    try:
        stats = index.reindex()
    except SiliconError as e:
        _fail(e, "index")

    if stats is None:
        typer.echo("Index pass already running; nothing to do.")
        return
    if _json_output:
        typer.echo(json.dumps(stats.to_dict(), indent=2))
        return
    typer.echo(
        f"Indexed: {stats.embedded} embedded, {stats.unchanged} unchanged, "
        f"{stats.failed} failed, {stats.deleted} removed "
        f"({stats.duration_seconds}s)"
    )
    if stats.failed:
        typer.echo(f"{stats.failed} notes could not be embedded; see silicon-ops.log", err=True)


@app.command("similar")
def similar_cmd(
    path: Annotated[str, typer.Argument(help="Note path, relative to the vault")],
    vault: VaultOption = None,
):
    """List notes similar to PATH that it does not already link to or from."""
    index = _get_index(vault)
    identity = Path(path).as_posix()
    try:
        neighbors = index.similar_to(identity)
    except EmbeddingProviderError as e:
        typer.echo(f"Could not embed {identity}; showing nothing.", err=True)
        _fail(e, f"similar {identity}")
    except SiliconError as e:
        _fail(e, f"similar {identity}")

    if neighbors is None:
        typer.echo(f"Not found: {identity}", err=True)
        raise typer.Exit(1)
    typer.echo(render_neighbors(neighbors, index.config.threshold, as_json=_json_output))


@app.command("wipe")
def wipe_cmd(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    vault: VaultOption = None,
):
    """Delete every stored vector and re-index the vault."""
    if not yes:
        typer.confirm("Delete all stored vectors and re-embed every note?", abort=True)
    index = _get_index(vault)
    try:
        stats = index.wipe()
    except SiliconError as e:
        _fail(e, "wipe")
    if stats is None:
        typer.echo("Index pass already running; records cleared only.")
    else:
        typer.echo(f"Rebuilt: {stats.embedded} embedded, {stats.failed} failed")


@app.command("status")
def status_cmd():
    """Show record count, vector dimension, and threshold."""
    index = _get_index()
    info = index.stats()
    if _json_output:
        typer.echo(json.dumps(info, indent=2))
        return
    for key, value in info.items():
        typer.echo(f"{key}: {value}")


@app.command("config")
def config_cmd(
    threshold: Annotated[Optional[float], typer.Option(
        "--threshold", "-t", help="Minimum similarity (0-1)",
    )] = None,
    ignore: Annotated[Optional[str], typer.Option(
        "--ignore", help="Comma-separated path prefixes to skip",
    )] = None,
    model: Annotated[Optional[str], typer.Option(
        "--model", help="Embedding model name",
    )] = None,
    api_key: Annotated[Optional[str], typer.Option(
        "--api-key", help="Store an API key in the config file",
    )] = None,
    vault: VaultOption = None,
):
    """Show or update the configuration."""
    config = _load_config()
    changed = False
    if threshold is not None:
        try:
            validate_threshold(threshold)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        config.threshold = threshold
        changed = True
    if ignore is not None:
        config.ignore_prefixes = clean_prefixes(ignore)
        changed = True
    if model is not None:
        if model != config.embedding.params.get("model"):
            typer.echo(MODEL_CHANGE_WARNING, err=True)
        config.embedding.params["model"] = model
        changed = True
    if api_key is not None:
        config.api_key = api_key
        changed = True
    if vault is not None:
        config.vault = vault.expanduser().resolve()
        changed = True
    if changed:
        save_config(config)

    key = config.effective_api_key
    masked = f"{key[:3]}...{key[-4:]}" if config.api_key_configured and len(key) > 8 else "(not set)"
    info = {
        "store": str(config.path),
        "vault": str(config.vault) if config.vault else None,
        "provider": config.embedding.name,
        "model": config.embedding.params.get("model"),
        "api_key": masked,
        "threshold": config.threshold,
        "ignore_prefixes": config.ignore_prefixes,
    }
    if _json_output:
        typer.echo(json.dumps(info, indent=2))
        return
    for k, v in info.items():
        typer.echo(f"{k}: {v}")


def main():
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130)
    except Exception as e:
        log_path = log_exception(e, context="silicon CLI", store_path=_store_path())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
