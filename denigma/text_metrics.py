"""Text measurement in Finale's design units, backed by FreeType."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Final

from denigma.score_models import FontInfo

logger = logging.getLogger(__name__)

# 288 EVPU per inch, 72 points per inch.
EVPU_PER_POINT: Final[int] = 4
_FC_MATCH_TIMEOUT: Final[int] = 10


@dataclass(frozen=True)
class TextMetrics:
    """Extents of a run of text, in EVPU."""

    advance: float
    ascent: float
    descent: float


def find_font_file(font_name: str) -> Path | None:
    """Resolve a family name to a font file through fontconfig's ``fc-match``."""
    executable = shutil.which("fc-match")
    if executable is None:
        return None
    try:
        result = subprocess.run(
            [executable, "--format=%{family}\n%{file}", font_name],
            capture_output=True,
            text=True,
            timeout=_FC_MATCH_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("fc-match failed for %s: %s", font_name, exc)
        return None
    lines = result.stdout.splitlines()
    if result.returncode != 0 or len(lines) < 2:
        return None
    # fc-match always answers with something; only accept the family we asked for.
    families = [family.strip().lower() for family in lines[0].split(",")]
    if font_name.lower() not in families:
        return None
    path = Path(lines[1])
    return path if path.is_file() else None


@lru_cache(maxsize=32)
def _load_face(path: Path) -> Any:
    import freetype

    return freetype.Face(str(path))


def measure_text(font: FontInfo, text: str, point_size: float | None = None) -> TextMetrics | None:
    """
    Measure *text* set in *font*.

    Returns ``None``, after logging a warning, when the font file cannot be
    found or read.
    """
    path = find_font_file(font.name)
    if path is None:
        logger.warning("font %s could not be resolved; text metrics unavailable", font.name)
        return None

    import freetype

    try:
        face = _load_face(path)
    except (OSError, freetype.FT_Exception) as exc:
        logger.warning("font %s could not be loaded from %s: %s", font.name, path, exc)
        return None

    size = point_size if point_size is not None else font.size
    face.set_char_size(int(size * 64))
    advance = 0
    for char in text:
        face.load_char(char, freetype.FT_LOAD_NO_BITMAP)
        advance += face.glyph.advance.x
    metrics = face.size
    scale = EVPU_PER_POINT / 64
    return TextMetrics(
        advance=advance * scale,
        ascent=metrics.ascender * scale,
        descent=-metrics.descender * scale,
    )
