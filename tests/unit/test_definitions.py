from pathlib import Path

import pytest

from trap_insights.definitions import (
    TrapDefinition,
    load_definition_files,
    load_definitions,
    normalize_oid,
    parse_definitions,
    split_paths,
)
from trap_insights.errors import ConfigParseError

TRAPS_YAML = """
collect:
  - device: core-switch
    traps:
      - name: " CustomLinkDown "
        type: trap
        trap_oid: 1.3.6.1.6.3.1.1.5.3
        event_type: SNMPLinkSample
        metrics:
          - oid: " 1.3.6.1.2.1.2.2.1.1"
            metric_name: ifIndex
          - oid: .1.3.6.1.2.1.2.2.1.8
            metric_name: ifOperStatus
  - device: ups
    traps:
      - name: OnBattery
        type: alarm
        trap_oid: .1.3.6.1.4.1.318.0.5
value_labels:
  1.3.6.1.4.1.9.1.1208: cat29xxStack
"""


def write(tmp_path: Path, name: str, text: str) -> str:
    path = tmp_path / name
    path.write_text(text)
    return str(path)


@pytest.mark.parametrize(
    ("oid", "expected"),
    [
        ("1.3.6.1.2.1.1.3.0", ".1.3.6.1.2.1.1.3.0"),
        (".1.3.6.1.2.1.1.3.0", ".1.3.6.1.2.1.1.3.0"),
        ("  1.3.6.1.2.1.1.3.0 ", ".1.3.6.1.2.1.1.3.0"),
        (" .1.3.6 ", ".1.3.6"),
    ],
)
def test_normalize_oid(oid: str, expected: str) -> None:
    """Test OIDs are trimmed and made absolute."""
    assert normalize_oid(oid) == expected
    assert normalize_oid(normalize_oid(oid)) == expected


def test_parse_definitions() -> None:
    """Test a collection document is parsed into trap definitions."""
    definitions = parse_definitions(TRAPS_YAML)

    assert len(definitions.traps) == 2
    link_down, on_battery = definitions.traps

    assert link_down.name == "CustomLinkDown"
    assert link_down.kind == "trap"
    assert link_down.trap_oid == ".1.3.6.1.6.3.1.1.5.3"
    assert link_down.event_type == "SNMPLinkSample"
    assert link_down.device == "core-switch"
    assert dict(link_down.metric_oid_to_name) == {
        ".1.3.6.1.2.1.2.2.1.1": "ifIndex",
        ".1.3.6.1.2.1.2.2.1.8": "ifOperStatus",
    }

    assert on_battery.kind == "alarm"
    assert on_battery.event_type == ""
    assert on_battery.device == "ups"
    assert dict(on_battery.metric_oid_to_name) == {}

    assert definitions.value_labels == {".1.3.6.1.4.1.9.1.1208": "cat29xxStack"}


def test_metric_oids_always_absolute() -> None:
    """Test every metric OID in the output carries the leading dot."""
    definitions = parse_definitions(TRAPS_YAML)
    for trap in definitions.traps:
        for oid in trap.metric_oid_to_name:
            assert oid.startswith(".")
            assert oid == oid.strip()


def test_duplicate_trap_oids_are_kept() -> None:
    """Test duplicates are not rejected by the loader."""
    text = """
collect:
  - device: a
    traps:
      - {name: First, trap_oid: 1.2.3}
      - {name: Second, trap_oid: 1.2.3}
"""
    definitions = parse_definitions(text)
    assert [t.name for t in definitions.traps] == ["First", "Second"]


def test_missing_trap_oid_is_empty() -> None:
    """Test a trap without trap_oid keeps an empty identifier."""
    definitions = parse_definitions("collect: [{device: a, traps: [{name: NoOid}]}]")
    assert definitions.traps[0].trap_oid == ""


def test_empty_document() -> None:
    """Test an empty document declares nothing."""
    definitions = parse_definitions("")
    assert definitions.traps == []
    assert definitions.value_labels == {}


@pytest.mark.parametrize(
    "text",
    [
        "collect: [unterminated",
        "- just\n- a list\n",
        "collect: not-a-list",
        "collect: [42]",
        "collect: [{device: a, traps: {name: x}}]",
        "collect: [{device: a, traps: [{name: x, metrics: [oops]}]}]",
        "collect: []\nvalue_labels: [1, 2]",
    ],
)
def test_parse_errors(text: str) -> None:
    """Test malformed structures raise ConfigParseError."""
    with pytest.raises(ConfigParseError):
        parse_definitions(text)


def test_definitions_are_immutable() -> None:
    """Test trap definitions cannot be changed once built."""
    definition = parse_definitions(TRAPS_YAML).traps[0]
    with pytest.raises(AttributeError):
        definition.name = "Other"  # type: ignore[misc]
    with pytest.raises(TypeError):
        definition.metric_oid_to_name[".1.2"] = "x"  # type: ignore[index]


def test_trap_definition_copies_metric_map() -> None:
    """Test the metric map is not shared with the caller."""
    metrics = {".1.2": "a"}
    definition = TrapDefinition(name="x", kind="trap", trap_oid=".1", metric_oid_to_name=metrics)
    metrics[".1.3"] = "b"
    assert dict(definition.metric_oid_to_name) == {".1.2": "a"}


def test_load_definitions(tmp_path: Path) -> None:
    """Test loading a definition file from disk."""
    path = write(tmp_path, "traps.yml", TRAPS_YAML)
    definitions = load_definitions(path)
    assert [t.name for t in definitions.traps] == ["CustomLinkDown", "OnBattery"]


def test_load_missing_file(tmp_path: Path) -> None:
    """Test an unreadable file raises ConfigParseError."""
    with pytest.raises(ConfigParseError):
        load_definitions(tmp_path / "missing.yml")


def test_split_paths() -> None:
    """Test the comma separated file list is split and trimmed."""
    assert split_paths(" a.yml, b.yml ,,") == ["a.yml", "b.yml"]
    assert split_paths("") == []


def test_load_definition_files_in_order(tmp_path: Path) -> None:
    """Test several files are loaded in the order given."""
    first = write(tmp_path, "first.yml", "collect: [{device: one, traps: [{name: A, trap_oid: 1.2.3}]}]")
    second = write(
        tmp_path,
        "second.yml",
        "collect: [{device: two, traps: [{name: B, trap_oid: 1.2.3}]}]\nvalue_labels: {1.9: nine}",
    )

    definitions = load_definition_files(f"{first},{second}")

    assert [(t.name, t.device) for t in definitions.traps] == [("A", "one"), ("B", "two")]
    assert definitions.value_labels == {".1.9": "nine"}


def test_load_definition_files_fails_on_any_bad_file(tmp_path: Path) -> None:
    """Test one broken file fails the whole load."""
    good = write(tmp_path, "good.yml", TRAPS_YAML)
    bad = write(tmp_path, "bad.yml", "collect: [unterminated")
    with pytest.raises(ConfigParseError):
        load_definition_files(f"{good},{bad}")
