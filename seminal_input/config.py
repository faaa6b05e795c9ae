"""
seminal_input.config
====================

Analysis settings, optionally loaded from a JSON file::

    {
        "output": "seminal-values.json",
        "include_nested_loops": false,
        "indent": 4,
        "sources": [
            {"pattern": "scanf", "kind": "arguments"},
            {"pattern": "fopen", "kind": "return_store"},
            {"pattern": "read",  "kind": "arguments", "description": "POSIX read"}
        ]
    }

Every key is optional.  A ``sources`` list replaces the default catalog
rather than extending it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import ConfigError
from .report import DEFAULT_INDENT, DEFAULT_OUTPUT
from .sources import InputSource, SourceCatalog, SourceKind, create_default_catalog

_log = logging.getLogger(__name__)

_KNOWN_KEYS = frozenset({"output", "include_nested_loops", "indent", "sources"})


@dataclass
class AnalysisConfig:
    """
    Settings of one analysis run.

    Attributes:
        output_path: Where the JSON report is written
        catalog: Input functions recognised by the classifier
        include_nested_loops: Also seed from the headers of nested loops
        indent: JSON indentation of the report
    """
    output_path: str = DEFAULT_OUTPUT
    catalog: SourceCatalog = field(default_factory=create_default_catalog)
    include_nested_loops: bool = False
    indent: int = DEFAULT_INDENT

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, file: Optional[str] = None) -> "AnalysisConfig":
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a JSON object", file=file)
        unknown = sorted(set(data) - _KNOWN_KEYS)
        if unknown:
            raise ConfigError(
                f"unknown configuration key(s): {', '.join(unknown)}",
                file=file,
                hint="valid keys: " + ", ".join(sorted(_KNOWN_KEYS)),
            )

        cfg = cls()
        if "output" in data:
            if not isinstance(data["output"], str) or not data["output"]:
                raise ConfigError("'output' must be a non-empty string", file=file)
            cfg.output_path = data["output"]
        if "include_nested_loops" in data:
            if not isinstance(data["include_nested_loops"], bool):
                raise ConfigError("'include_nested_loops' must be true or false", file=file)
            cfg.include_nested_loops = data["include_nested_loops"]
        if "indent" in data:
            indent = data["indent"]
            if isinstance(indent, bool) or not isinstance(indent, int) or indent < 0:
                raise ConfigError("'indent' must be a non-negative integer", file=file)
            cfg.indent = indent
        if "sources" in data:
            cfg.catalog = _catalog_from_list(data["sources"], file)
        return cfg

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AnalysisConfig":
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot read configuration: {exc.strerror}",
                              file=str(path), cause=exc) from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"invalid JSON: {exc.msg}", file=str(path),
                              line=exc.lineno, cause=exc) from exc
        cfg = cls.from_dict(data, file=str(path))
        _log.debug("loaded configuration from %s (%d source(s))",
                   path, len(cfg.catalog))
        return cfg


def _catalog_from_list(items: Any, file: Optional[str] = None) -> SourceCatalog:
    if not isinstance(items, list):
        raise ConfigError("'sources' must be a list", file=file)
    catalog = SourceCatalog()
    for i, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("pattern"), str):
            raise ConfigError(f"sources[{i}] needs a string 'pattern'", file=file)
        kind = SourceKind.parse(str(item.get("kind", SourceKind.ARGUMENTS.value)))
        catalog.add_source(InputSource(
            pattern=item["pattern"],
            kind=kind,
            description=str(item.get("description", "")),
        ))
    return catalog


def parse_source_spec(text: str) -> InputSource:
    """Parse a ``PATTERN[:KIND]`` command-line input source."""
    pattern, sep, kind = text.partition(":")
    if not pattern:
        raise ConfigError(f"invalid input source {text!r}",
                          hint="use PATTERN or PATTERN:KIND, e.g. fgets:arguments")
    return InputSource(
        pattern=pattern,
        kind=SourceKind.parse(kind) if sep else SourceKind.ARGUMENTS,
    )
