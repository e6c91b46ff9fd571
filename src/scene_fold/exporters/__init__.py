"""Scene exporters."""

from scene_fold.exporters.base import Exporter
from scene_fold.exporters.json_exporter import JsonExporter
from scene_fold.exporters.yaml_exporter import YamlExporter

EXPORTERS: dict[str, type[Exporter]] = {
    "json": JsonExporter,
    "yaml": YamlExporter,
}

__all__ = ["EXPORTERS", "Exporter", "JsonExporter", "YamlExporter"]
