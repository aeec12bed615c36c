import logging
import re
from pathlib import Path

COLORS = {
    "DEBUG": "\033[36m",  # cyan
    "INFO": "\033[32m",  # green
    "WARNING": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
    "CRITICAL": "\033[1;31m",  # bold red
}
COLOR_RESET = "\033[0m"

WHITESPACE_RE = re.compile(r"\s+")
DASHES_RE = re.compile(r"-+")


class ColorFormatter(logging.Formatter):
    def format(self, record):
        color = COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{COLOR_RESET}"
        return super().format(record)


def setup_logging(debug: bool = False):
    handler = logging.StreamHandler()
    handler.setFormatter(ColorFormatter("%(levelname)s %(message)s"))
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG if debug else logging.INFO)


class BuildError(RuntimeError):
    """Aborts the icon set currently being built. The message names the path involved."""


def normalize_name(name: str) -> str:
    """Lower-case, whitespace to dashes, no repeated or surrounding dashes."""
    name = WHITESPACE_RE.sub("-", name.lower())
    return DASHES_RE.sub("-", name).strip("-")


def relative_posix(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def icon_name(path: Path, root: Path) -> str:
    """Name an icon after its path below root: directories and stem joined by '-'.

    icons/arrows/Chevron Left.svg -> arrows-chevron-left
    """
    parts = list(path.relative_to(root).parent.parts)
    parts = [p for p in parts if p not in ("", ".", "..")]
    parts.append(path.stem)
    return normalize_name("-".join(parts))
