"""YAML exporter for scenes."""

from __future__ import annotations

from pathlib import Path

import yaml

from scene_fold.exporters.base import Exporter


class YamlExporter(Exporter):
    """Export scenes to YAML format."""

    @property
    def extension(self) -> str:
        """Return yaml extension."""
        return "yaml"

    def write(self, records: list[dict], output_path: Path) -> None:
        output = {
            "scenes": records,
            "count": len(records),
        }
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(output, f, allow_unicode=True, sort_keys=False)
