"""Mapping table: the signal-mapping configuration model.

The table is built once at startup from the ``mappings`` section of a YAML
document and never mutated afterwards. Parsing is deliberately tolerant of
degraded input (unnamed entries, unknown datatypes, unknown triggers) and
reports it through log diagnostics; only structurally unusable entries
raise :class:`~can2vss.exceptions.ConfigError`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from can2vss._constants import MAPPINGS_SECTION
from can2vss.exceptions import ConfigError
from can2vss.models import (
    CodeTransform,
    DirectTransform,
    SignalMapping,
    SignalSource,
    Transform,
    UpdateTrigger,
    ValueMapTransform,
    ValueType,
)
from can2vss.normalize import scalar_text

_logger = logging.getLogger(__name__)


class MappingTable(Mapping[str, SignalMapping]):
    """Read-only ``name -> SignalMapping`` table.

    Iteration follows declaration order, which is also the order the
    default transform engine evaluates mappings in.
    """

    def __init__(self, mappings: Iterable[SignalMapping] = ()) -> None:
        self._mappings: dict[str, SignalMapping] = {}
        for mapping in mappings:
            if mapping.name in self._mappings:
                raise ConfigError(f"Duplicate signal mapping {mapping.name!r}", entry=mapping.name)
            self._mappings[mapping.name] = mapping

    def __getitem__(self, name: str) -> SignalMapping:
        return self._mappings[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def __repr__(self) -> str:
        return f"MappingTable({list(self._mappings)!r})"

    def names(self) -> tuple[str, ...]:
        return tuple(self._mappings)

    def periodic_mappings(self) -> list[SignalMapping]:
        """Mappings that re-emit on elapsed time (PERIODIC/BOTH with an interval)."""
        return [m for m in self._mappings.values() if m.is_periodic]

    def input_signals(self, source_type: str | None = None) -> set[str]:
        """Names of external inputs referenced by the table, optionally filtered by source type."""
        return {
            m.source.name
            for m in self._mappings.values()
            if m.source is not None and (source_type is None or m.source.type == source_type)
        }


def _parse_source(raw: Any, name: str) -> SignalSource:
    if not isinstance(raw, dict):
        raise ConfigError(f"Signal {name}: 'source' must be a mapping", entry=name)
    source_type = raw.get("type")
    source_name = raw.get("name")
    if source_type is None or source_name is None:
        raise ConfigError(f"Signal {name}: 'source' requires both 'type' and 'name'", entry=name)
    return SignalSource(type=str(source_type), name=str(source_name))


def _parse_datatype(raw: Any, name: str) -> ValueType:
    if raw is None:
        _logger.warning("No datatype specified for signal %s, using unspecified", name)
        return ValueType.UNSPECIFIED
    datatype = ValueType.from_config(str(raw))
    if datatype is None:
        _logger.warning("Unknown datatype '%s' for signal %s", raw, name)
        return ValueType.UNSPECIFIED
    return datatype


def _parse_interval(raw: Any, name: str) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ConfigError(f"Signal {name}: 'interval_ms' must be an integer, got {raw!r}", entry=name)
    try:
        interval = int(raw)
    except ValueError as exc:
        raise ConfigError(f"Signal {name}: 'interval_ms' must be an integer, got {raw!r}", entry=name) from exc
    if interval < 0:
        raise ConfigError(f"Signal {name}: 'interval_ms' must not be negative", entry=name)
    return interval


def _parse_depends_on(raw: Any, name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError(f"Signal {name}: 'depends_on' must be a list", entry=name)
    return tuple(str(dep) for dep in raw)


def _parse_value_map(raw: Any, name: str) -> ValueMapTransform:
    if not isinstance(raw, list):
        raise ConfigError(f"Signal {name}: transform 'mapping' must be a list of from/to items", entry=name)
    table: dict[str, str] = {}
    for item in raw:
        if not isinstance(item, dict) or "from" not in item or "to" not in item:
            raise ConfigError(f"Signal {name}: value mapping item {item!r} needs 'from' and 'to'", entry=name)
        key = scalar_text(item["from"])
        if key in table:
            raise ConfigError(f"Signal {name}: duplicate value mapping for {key!r}", entry=name)
        table[key] = scalar_text(item["to"])
    return ValueMapTransform(mapping=table)


def _parse_transform(raw: Any, name: str) -> Transform:
    if raw is None:
        return DirectTransform()
    if not isinstance(raw, dict):
        raise ConfigError(f"Signal {name}: 'transform' must be a mapping", entry=name)
    # Precedence: code, then the legacy math alias, then value mapping.
    if raw.get("code") is not None:
        return CodeTransform(code=str(raw["code"]))
    if raw.get("math") is not None:
        return CodeTransform(code=str(raw["math"]))
    if raw.get("mapping") is not None:
        return _parse_value_map(raw["mapping"], name)
    return DirectTransform()


def parse_mapping_entry(entry: Any, index: int = 0) -> SignalMapping | None:
    """Parse one entry of the ``mappings`` list.

    Returns ``None`` for entries without a signal name; those are skipped
    by the table builder.
    """
    if not isinstance(entry, dict):
        raise ConfigError(f"Mapping entry #{index} is not a mapping", entry=index)

    raw_name = entry.get("signal", entry.get("name"))
    if raw_name is None or raw_name == "":
        _logger.info("Skipping mapping entry #%d without a signal name", index)
        return None
    if not isinstance(raw_name, str):
        raise ConfigError(f"Mapping entry #{index}: signal name must be a string, got {raw_name!r}", entry=index)
    name = raw_name

    source = _parse_source(entry["source"], name) if entry.get("source") is not None else None
    datatype = _parse_datatype(entry.get("datatype"), name)

    is_struct = datatype == ValueType.STRUCT
    struct_type: str | None = None
    if is_struct:
        if entry.get("struct_type") is not None:
            struct_type = str(entry["struct_type"])
    elif entry.get("struct_type") is not None:
        _logger.debug("Ignoring struct_type for non-struct signal %s", name)

    raw_trigger = entry.get("update_trigger")

    try:
        return SignalMapping(
            name=name,
            source=source,
            datatype=datatype,
            interval_ms=_parse_interval(entry.get("interval_ms"), name),
            is_struct=is_struct,
            struct_type=struct_type,
            depends_on=_parse_depends_on(entry.get("depends_on"), name),
            transform=_parse_transform(entry.get("transform"), name),
            update_trigger=UpdateTrigger.from_config(None if raw_trigger is None else str(raw_trigger)),
        )
    except ValidationError as exc:
        raise ConfigError(f"Signal {name}: {exc}", entry=name) from exc


def build_mapping_table(document: Any) -> MappingTable:
    """Build a :class:`MappingTable` from an already-parsed YAML document."""
    if not isinstance(document, dict) or MAPPINGS_SECTION not in document:
        raise ConfigError(f"No '{MAPPINGS_SECTION}' section found in mapping configuration")

    entries = document[MAPPINGS_SECTION]
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ConfigError(f"'{MAPPINGS_SECTION}' must be a list of mapping entries")

    mappings: list[SignalMapping] = []
    for index, entry in enumerate(entries):
        mapping = parse_mapping_entry(entry, index)
        if mapping is not None:
            mappings.append(mapping)
    return MappingTable(mappings)


def load_mapping_table(path: str | Path) -> MappingTable:
    """Read and parse a mapping YAML file."""
    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as fh:
            document = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read mapping file {file_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in mapping file {file_path}: {exc}") from exc

    table = build_mapping_table(document)
    _logger.info("Loaded %d signal mappings from %s", len(table), file_path)
    return table
