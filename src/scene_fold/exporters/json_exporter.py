"""JSON exporter for scenes."""

from __future__ import annotations

import json
from pathlib import Path

from scene_fold.exporters.base import Exporter


class JsonExporter(Exporter):
    """Export scenes to JSON format."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    @property
    def extension(self) -> str:
        return "json"

    def write(self, records: list[dict], output_path: Path) -> None:
        output = {"scenes": records, "count": len(records)}
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=self.indent, ensure_ascii=False)
