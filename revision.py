"""Content hashing and hash-qualified artifact names.

A build hashes the bytes of every source SVG, names its outputs
``{base}{sep}{hash}.{ext}``, removes whatever revision was there before and
points the reference files (style sheets, front-end modules) at the new names.
"""

import hashlib
import logging
import os
import re
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from utils import BuildError, relative_posix

DEFAULT_HASH_LENGTH = 10
LOCK_NAME = ".revision.lock"

_locks: Dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


class RevisionError(BuildError):
    pass


def find_svg_files(src: Path) -> List[Path]:
    """All SVGs below src, ordered by their forward-slash relative path."""
    src = Path(src)
    if not src.is_dir():
        raise FileNotFoundError(f"Source directory does not exist: {src}")
    files = [p for p in src.rglob("*") if p.is_file() and p.suffix.lower() == ".svg"]
    return sorted(files, key=lambda p: relative_posix(p, src))


def content_hash(files: Sequence[Path], length: int = DEFAULT_HASH_LENGTH) -> str:
    digest = hashlib.sha256()
    try:
        for path in files:
            digest.update(Path(path).read_bytes())
    except OSError as e:
        logging.warning(f"Could not read {e.filename} for hashing, using a timestamp: {e}")
        return timestamp_hash(length)
    return digest.hexdigest()[:length]


def _stamp() -> str:
    return format(time.time_ns() // 1_000_000, "x")


def timestamp_hash(length: int = DEFAULT_HASH_LENGTH) -> str:
    # Only busts caches; two runs never agree.
    return _stamp()[-length:]


@contextmanager
def destination_lock(dest: Path) -> Iterator[Path]:
    """Allow a single writer per destination directory.

    Threads of this process queue on a per-directory lock; other processes
    are refused through a lock file created with O_EXCL.
    """
    dest = Path(dest).resolve()
    with _locks_guard:
        lock = _locks.setdefault(dest, threading.Lock())

    with lock:
        dest.mkdir(parents=True, exist_ok=True)
        lock_path = dest / LOCK_NAME
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            raise RevisionError(
                f"{dest} is being written by another build (remove {lock_path} if stale)"
            ) from None
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
            os.close(fd)
            yield dest
        finally:
            lock_path.unlink(missing_ok=True)


class Revisioner:
    def __init__(
        self,
        base_name: str,
        extensions: Iterable[str],
        content_hash: str = "",
        separator: str = ".",
        hash_length: Optional[int] = None,
    ):
        if separator not in ("-", "."):
            raise ValueError(f"Hash separator must be '-' or '.', got {separator!r}")
        self.base_name = base_name
        self.extensions = [ext.lstrip(".") for ext in extensions]
        self.content_hash = content_hash
        self.separator = separator
        if hash_length is None:
            hash_length = len(content_hash) or DEFAULT_HASH_LENGTH
        # A timestamp fallback can be shorter than the configured length.
        shortest = min(hash_length, len(_stamp()))
        self._hash_group = rf"(?:[-.][0-9a-f]{{{shortest},}})?"

        base = re.escape(base_name)
        exts = "|".join(re.escape(ext) for ext in self.extensions)
        self._revision_re = re.compile(rf"^{base}{self._hash_group}\.(?:{exts})$")

    def filename(self, ext: str) -> str:
        ext = ext.lstrip(".")
        if not self.content_hash:
            return f"{self.base_name}.{ext}"
        return f"{self.base_name}{self.separator}{self.content_hash}.{ext}"

    def is_revision(self, name: str) -> bool:
        return bool(self._revision_re.match(name))

    def purge(self, dest: Path) -> List[str]:
        """Delete every revision of our artifacts in dest, whatever its hash."""
        dest = Path(dest)
        if not dest.is_dir():
            return []
        removed = []
        for entry in sorted(dest.iterdir()):
            if entry.is_file() and self.is_revision(entry.name):
                entry.unlink()
                logging.debug(f"Removed old revision {entry.name}")
                removed.append(entry.name)
        return removed

    def write(self, dest: Path, artifacts: Mapping[str, bytes]) -> Dict[str, Path]:
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        written = {}
        for ext, data in artifacts.items():
            path = dest / self.filename(ext)
            try:
                path.write_bytes(data)
            except OSError as e:
                raise BuildError(f"Could not write {path}: {e}") from e
            written[ext.lstrip(".")] = path
        return written

    def publish(self, staging: Path, dest: Path) -> Dict[str, Path]:
        """Move staged ``{base}.{ext}`` files into dest under their revisioned names."""
        staging = Path(staging)
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        published = {}
        for ext in self.extensions:
            staged = staging / f"{self.base_name}.{ext}"
            if not staged.exists():
                continue
            target = dest / self.filename(ext)
            try:
                os.replace(staged, target)
            except OSError as e:
                raise BuildError(f"Could not move {staged} to {target}: {e}") from e
            logging.debug(f"Wrote {target.name}")
            published[ext] = target
        return published

    def _reference_re(self, ext: str) -> "re.Pattern[str]":
        base = re.escape(self.base_name)
        return re.compile(
            rf"(?<![\w-]){base}{self._hash_group}\.{re.escape(ext)}(?![\w-])(?:\?[^'\"\s)#]*)?"
        )

    def rewrite_text(self, text: str) -> str:
        for ext in self.extensions:
            # Callable replacement: the new name is literal text, not a template.
            new_name = self.filename(ext)
            text = self._reference_re(ext).sub(lambda m: new_name, text)
        return text

    def rewrite_references(self, paths: Iterable[Path]) -> List[Path]:
        changed = []
        for path in paths:
            path = Path(path)
            if not path.exists():
                logging.warning(f"Reference file {path} not found, skipping")
                continue
            text = path.read_text(encoding="utf-8")
            updated = self.rewrite_text(text)
            if updated != text:
                try:
                    path.write_text(updated, encoding="utf-8")
                except OSError as e:
                    raise BuildError(f"Could not update references in {path}: {e}") from e
                logging.debug(f"Updated references in {path}")
                changed.append(path)
        return changed

    def revise(
        self,
        dest: Path,
        artifacts: Mapping[str, bytes],
        reference_files: Iterable[Path] = (),
    ) -> Dict[str, Path]:
        """Purge old revisions, write the new ones, then fix up references."""
        with destination_lock(dest):
            self.purge(dest)
            written = self.write(dest, artifacts)
            self.rewrite_references(reference_files)
        return written
