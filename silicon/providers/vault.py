"""
Filesystem document source.

Treats a directory of markdown notes as the document collection:
identities are POSIX paths relative to the vault root, version stamps are
file modification times in nanoseconds, and links come from
``[[wikilinks]]`` and relative markdown links.
"""

import logging
import posixpath
import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from ..types import SourceDocument

logger = logging.getLogger(__name__)

# [[target]], [[target|alias]], [[target#heading]], ![[embed]]
_WIKILINK_RE = re.compile(r"!?\[\[([^\]\|#]*)(?:#[^\]\|]*)?(?:\|[^\]]*)?\]\]")

# [text](target) with an optional "title"; targets in <...> may contain spaces
_MDLINK_RE = re.compile(r"\[[^\]]*\]\(\s*(<[^>]+>|[^)\s]+)(?:\s+\"[^\"]*\")?\s*\)")

_URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


class VaultDocumentSource:
    """
    Document source backed by a directory of text notes.

    Hidden files and folders (names starting with '.') are skipped, which
    keeps tool directories such as .obsidian or .git out of the index.
    """

    def __init__(self, root: Path, extensions: tuple[str, ...] = (".md",)):
        self.root = Path(root).expanduser().resolve()
        self.extensions = tuple(e.lower() for e in extensions)
        self._graph_signature: Optional[tuple] = None
        self._outgoing: dict[str, set[str]] = {}
        self._incoming: dict[str, set[str]] = {}

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    def _path(self, identity: str) -> Path:
        path = (self.root / identity).resolve()
        if not path.is_relative_to(self.root):
            raise FileNotFoundError(f"Outside vault: {identity}")
        return path

    def _is_candidate(self, path: Path) -> bool:
        rel = path.relative_to(self.root)
        if any(part.startswith(".") for part in rel.parts):
            return False
        return path.suffix.lower() in self.extensions and path.is_file()

    def list_documents(self) -> list[SourceDocument]:
        """Enumerate notes in path order."""
        if not self.root.is_dir():
            logger.warning("Vault not found: %s", self.root)
            return []

        documents = []
        for path in sorted(self.root.rglob("*")):
            if path.is_symlink() or not self._is_candidate(path):
                continue
            identity = path.relative_to(self.root).as_posix()
            documents.append(SourceDocument(
                identity=identity,
                version=path.stat().st_mtime_ns,
                label=path.stem,
            ))
        return documents

    def exists(self, identity: str) -> bool:
        try:
            path = self._path(identity)
        except FileNotFoundError:
            return False
        return path.is_file() and self._is_candidate(path)

    def version(self, identity: str) -> Optional[int]:
        if not self.exists(identity):
            return None
        return self._path(identity).stat().st_mtime_ns

    def label(self, identity: str) -> str:
        return posixpath.splitext(posixpath.basename(identity))[0]

    def read(self, identity: str) -> str:
        path = self._path(identity)
        if not path.is_file():
            raise FileNotFoundError(f"Document not found: {identity}")
        return path.read_text(encoding="utf-8", errors="replace")

    # -------------------------------------------------------------------------
    # Link Graph
    # -------------------------------------------------------------------------

    def outgoing_links(self, identity: str) -> set[str]:
        self._refresh_graph()
        return set(self._outgoing.get(identity, ()))

    def incoming_links(self, identity: str) -> set[str]:
        self._refresh_graph()
        return set(self._incoming.get(identity, ()))

    def _refresh_graph(self) -> None:
        """Rebuild the link graph when any note was added, removed, or edited."""
        documents = self.list_documents()
        signature = tuple((d.identity, d.version) for d in documents)
        if signature == self._graph_signature:
            return

        identities = [d.identity for d in documents]
        by_basename: dict[str, list[str]] = {}
        for identity in identities:
            by_basename.setdefault(posixpath.basename(identity).lower(), []).append(identity)
        known = set(identities)

        outgoing: dict[str, set[str]] = {}
        incoming: dict[str, set[str]] = {}
        for identity in identities:
            try:
                text = self.read(identity)
            except OSError as e:
                logger.warning("Could not read %s for links: %s", identity, e)
                continue
            targets = set()
            for raw in extract_links(text):
                target = self._resolve(raw, identity, known, by_basename)
                if target and target != identity:
                    targets.add(target)
            outgoing[identity] = targets
            for target in targets:
                incoming.setdefault(target, set()).add(identity)

        self._outgoing = outgoing
        self._incoming = incoming
        self._graph_signature = signature
        logger.debug("Link graph rebuilt: %d notes", len(identities))

    def _resolve(
        self,
        raw: str,
        source: str,
        known: set[str],
        by_basename: dict[str, list[str]],
    ) -> Optional[str]:
        """Map a link target to a known identity, or None."""
        target = unquote(raw.strip())
        if not target:
            return None
        if not posixpath.splitext(target)[1]:
            target += self.extensions[0]

        # Vault-absolute, then relative to the linking note
        candidates = [
            posixpath.normpath(target.lstrip("/")),
            posixpath.normpath(posixpath.join(posixpath.dirname(source), target)),
        ]
        for candidate in candidates:
            if candidate in known:
                return candidate

        # Shortest-form wikilinks name only the file
        matches = by_basename.get(posixpath.basename(target).lower(), [])
        if len(matches) == 1:
            return matches[0]
        return None


def extract_links(text: str) -> list[str]:
    """
    Raw link targets in a note: wikilinks and local markdown links.

    External URLs (anything with a scheme) and pure anchors are dropped.
    """
    links = [m.group(1) for m in _WIKILINK_RE.finditer(text)]
    for m in _MDLINK_RE.finditer(text):
        target = m.group(1).strip("<>")
        if _URL_SCHEME_RE.match(target) or target.startswith("#"):
            continue
        links.append(target.split("#", 1)[0])
    return [link for link in links if link.strip()]
