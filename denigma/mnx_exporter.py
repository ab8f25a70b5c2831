"""MnxExporter: converts a source document to an MNX JSON document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Final

from denigma import mnx_validation
from denigma.context import DenigmaContext
from denigma.mnx_context import MnxContext
from denigma.mnx_global import create_global, create_mappings
from denigma.mnx_layouts import create_layouts
from denigma.mnx_parts import create_parts
from denigma.mnx_scores import create_scores
from denigma.mnx_sequences import finalize_jump_ties
from denigma.score_document import ScoreDocument

# Lyric line ids sort verses first, then choruses, then sections.
_LYRIC_TYPE_ORDER: Final[str] = "vcs"


class MnxExporter:
    """
    Convert a :class:`ScoreDocument` into MNX.

    The document is built in layers, each finishing before the next starts:
    repeat-text mappings, global measures, parts, deferred jump ties,
    layouts and finally scores.
    """

    def __init__(self, ctx: DenigmaContext) -> None:
        self.ctx = ctx

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _add_global_lyrics(self, mctx: MnxContext) -> None:
        if not mctx.lyric_lines:
            return
        line_order = sorted(
            mctx.lyric_lines,
            key=lambda line_id: (_LYRIC_TYPE_ORDER.find(line_id[0]), int(line_id[1:] or 0)),
        )
        mctx.mnx["global"]["lyrics"] = {
            "lineOrder": line_order,
            "lineMetadata": {line_id: {"label": mctx.lyric_lines[line_id]} for line_id in line_order},
        }

    def _serialize(self, mnx: dict[str, Any]) -> str:
        indent = self.ctx.options.indent_spaces
        if indent < 0:
            text = json.dumps(mnx, ensure_ascii=False, separators=(",", ":"))
        else:
            text = json.dumps(mnx, ensure_ascii=False, indent=indent)
        return text + "\n"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, document: ScoreDocument) -> dict[str, Any]:
        """Build the MNX document for *document* without writing or validating it."""
        mctx = MnxContext(document, self.ctx)
        create_mappings(mctx)
        create_global(mctx)
        create_parts(mctx)
        finalize_jump_ties(mctx)
        create_layouts(mctx)
        create_scores(mctx)
        self._add_global_lyrics(mctx)
        return mctx.mnx

    def export(self, document: ScoreDocument, output_path: Path) -> dict[str, Any]:
        """
        Build, validate and write the MNX document for *document*.

        Validation problems are logged as warnings and do not stop the write.

        Raises:
            OSError: If the output file cannot be written.
        """
        mnx = self.build(document)
        if not self.ctx.options.no_validate:
            mnx_validation.validate(mnx, self.ctx)
        with open(output_path, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(self._serialize(mnx))
        return mnx
