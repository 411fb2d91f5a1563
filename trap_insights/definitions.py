#  Copyright 2024 Red Hat, Inc.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

"""Load trap and metric definitions from YAML collection files.

A collection file looks like::

    collect:
      - device: core-switch
        traps:
          - name: CustomLinkDown
            type: trap
            trap_oid: 1.3.6.1.6.3.1.1.5.3
            event_type: SNMPTrapSample
            metrics:
              - oid: 1.3.6.1.2.1.2.2.1.1
                metric_name: ifIndex
    value_labels:
      .1.3.6.1.4.1.9.1.1208: cat29xxStack

Only the syntax is validated here. Duplicate trap OIDs are legal and are
resolved by the registry (the last definition registered wins).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from trap_insights.errors import ConfigParseError

logger = logging.getLogger(__name__)

OID_SEPARATOR = "."


def normalize_oid(oid: str) -> str:
    """Return ``oid`` trimmed and in absolute (leading dot) form."""
    oid = oid.strip()
    if not oid.startswith(OID_SEPARATOR):
        oid = OID_SEPARATOR + oid
    return oid


@dataclass(frozen=True)
class MetricDefinition:
    """A globally scoped variable OID to display name mapping."""

    oid: str
    metric_name: str


@dataclass(frozen=True)
class TrapDefinition:
    """Identity and variable naming of one recognized trap."""

    name: str
    kind: str
    trap_oid: str
    event_type: str = ""
    metric_oid_to_name: Mapping[str, str] = field(default_factory=dict, hash=False)
    device: str = ""

    def __post_init__(self) -> None:
        # Freeze the metric map so definitions can be shared across threads.
        object.__setattr__(
            self,
            "metric_oid_to_name",
            MappingProxyType(dict(self.metric_oid_to_name)),
        )


@dataclass
class DefinitionSet:
    """Everything declared by one or more collection files."""

    traps: list[TrapDefinition] = field(default_factory=list)
    value_labels: dict[str, str] = field(default_factory=dict)

    def extend(self, other: DefinitionSet) -> None:
        self.traps.extend(other.traps)
        self.value_labels.update(other.value_labels)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_list(value: Any, what: str, source: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"{source}: '{what}' must be a list, got {type(value).__name__}"
        raise ConfigParseError(msg)
    return value


def _as_mapping(value: Any, what: str, source: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"{source}: {what} must be a mapping, got {type(value).__name__}"
        raise ConfigParseError(msg)
    return value


def _parse_trap(entry: Any, device: str, source: str) -> TrapDefinition:
    entry = _as_mapping(entry, "trap entry", source)

    metric_oid_to_name: dict[str, str] = {}
    for metric in _as_list(entry.get("metrics"), "metrics", source):
        metric = _as_mapping(metric, "metric entry", source)
        metric_oid_to_name[normalize_oid(_text(metric.get("oid")))] = _text(
            metric.get("metric_name"),
        )

    trap_oid = _text(entry.get("trap_oid"))
    return TrapDefinition(
        name=_text(entry.get("name")),
        kind=_text(entry.get("type")),
        trap_oid=normalize_oid(trap_oid) if trap_oid else "",
        event_type=_text(entry.get("event_type")),
        metric_oid_to_name=metric_oid_to_name,
        device=device,
    )


def parse_definitions(text: str, source: str = "<string>") -> DefinitionSet:
    """Parse the YAML text of one collection file.

    Args:
    ----
        text: The YAML document.
        source: Name of the document, used in error messages.

    Returns:
    -------
        The trap definitions and value labels the document declares.

    Raises:
    ------
        ConfigParseError: The document is not valid YAML or does not have
            the collection structure.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"{source}: failed to parse collection: {exc}"
        raise ConfigParseError(msg) from exc

    if document is None:
        return DefinitionSet()
    document = _as_mapping(document, "collection document", source)

    definitions = DefinitionSet()
    for data_set in _as_list(document.get("collect"), "collect", source):
        data_set = _as_mapping(data_set, "collect entry", source)
        device = _text(data_set.get("device"))
        for entry in _as_list(data_set.get("traps"), "traps", source):
            definitions.traps.append(_parse_trap(entry, device, source))

    labels = document.get("value_labels") or {}
    for oid, label in _as_mapping(labels, "value_labels", source).items():
        definitions.value_labels[normalize_oid(_text(oid))] = _text(label)

    return definitions


def load_definitions(path: str | Path) -> DefinitionSet:
    """Read and parse a single collection file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to open file %s: %s", path, exc)
        msg = f"{path}: failed to open file: {exc}"
        raise ConfigParseError(msg) from exc

    definitions = parse_definitions(text, str(path))
    logger.debug(
        "Loaded %d trap definition(s) from %s",
        len(definitions.traps),
        path,
    )
    return definitions


def split_paths(file_names: str) -> list[str]:
    """Split a comma separated list of file names, ignoring blanks."""
    return [name.strip() for name in file_names.split(",") if name.strip()]


def load_definition_files(file_names: str) -> DefinitionSet:
    """Load every file of a comma separated list, in order.

    Later files are appended after earlier ones so that registering the
    result in order gives the last file precedence.
    """
    definitions = DefinitionSet()
    for path in split_paths(file_names):
        definitions.extend(load_definitions(path))
    return definitions
