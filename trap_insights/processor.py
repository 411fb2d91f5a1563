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

"""Turn a decoded trap into a normalized Insights event.

The processor knows nothing about the wire format: the receiver hands it
a :class:`TrapPacket` whose variable bindings are already decoded into
plain Python values tagged with their SNMP type.
"""

from __future__ import annotations

import enum
import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union

from trap_insights.definitions import TrapDefinition
from trap_insights.registry import SNMP_TRAP_OID, DispatchRegistry

logger = logging.getLogger(__name__)


class SnmpVersion(enum.IntEnum):
    """Message version numbers as carried on the wire."""

    V1 = 0
    V2C = 1
    V3 = 3


class WireType(enum.Enum):
    OCTET_STRING = "OctetString"
    INTEGER = "Integer"
    UINTEGER32 = "Unsigned32"
    GAUGE32 = "Gauge32"
    COUNTER32 = "Counter32"
    COUNTER64 = "Counter64"
    TIME_TICKS = "TimeTicks"
    OBJECT_IDENTIFIER = "ObjectIdentifier"
    IP_ADDRESS = "IpAddress"
    OPAQUE = "Opaque"
    BITS = "Bits"
    NULL = "Null"
    NO_SUCH_OBJECT = "NoSuchObject"
    NO_SUCH_INSTANCE = "NoSuchInstance"
    END_OF_MIB_VIEW = "EndOfMibView"


INTEGER_TYPES = frozenset(
    {
        WireType.INTEGER,
        WireType.UINTEGER32,
        WireType.GAUGE32,
        WireType.COUNTER32,
        WireType.COUNTER64,
        WireType.TIME_TICKS,
    },
)


class RawIdentifier(str):
    """An OID value forwarded in its dotted form."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"RawIdentifier({str.__repr__(self)})"


FieldValue = Union[str, int, RawIdentifier]
NormalizedEvent = dict[str, FieldValue]


@dataclass(frozen=True)
class VarBind:
    """One decoded variable binding.

    ``name`` is an absolute OID (``.1.3.6...``). ``value`` is ``bytes`` for
    octet strings, ``int`` for the numeric types and an absolute OID string
    for object identifiers.
    """

    name: str
    type: WireType
    value: Any


@dataclass(frozen=True)
class TrapPacket:
    version: SnmpVersion
    community: str = ""
    variables: list[VarBind] = field(default_factory=list)


Resolver = Callable[[str], str]


def reverse_lookup(address: str) -> str:
    """Resolve ``address`` to its host name, raising ``OSError`` on failure."""
    host, _, _ = socket.gethostbyaddr(address)
    return host


class TrapProcessor:
    """Classify traps against the registry and build events.

    One instance serves every packet. It holds only read-only state so it
    can run concurrently in executor threads.
    """

    def __init__(
        self,
        registry: DispatchRegistry,
        community: str = "",
        default_event_type: str = "",
        default_device: str = "",
        drop_undeclared_traps: bool = False,
        verbose: bool = False,
        resolver: Resolver = reverse_lookup,
    ) -> None:
        self.registry = registry
        self.community = community.strip()
        self.default_event_type = default_event_type
        self.default_device = default_device
        self.drop_undeclared_traps = drop_undeclared_traps
        self.verbose = verbose
        self._resolve = resolver

    def resolve_source(self, source_ip: str) -> tuple[str, str]:
        """Return the full and short host name of ``source_ip``.

        A failed lookup never drops the trap; the address stands in for
        both names.
        """
        try:
            host = self._resolve(source_ip)
        except (OSError, UnicodeError) as exc:
            logger.warning("Reverse lookup of %s failed: %s", source_ip, exc)
            return source_ip, source_ip
        if not host:
            return source_ip, source_ip
        host = host.rstrip(".")
        return host, host.split(".")[0]

    def process(self, packet: TrapPacket, source_ip: str) -> NormalizedEvent | None:
        """Build the event for one trap, or return None if it is dropped."""
        if self.verbose:
            logger.info("Trap received from %s", source_ip)

        if packet.version == SnmpVersion.V2C and packet.community != self.community:
            logger.error("Invalid community string from %s", source_ip)
            return None

        source_host, short_host = self.resolve_source(source_ip)
        if self.verbose:
            logger.info("Lookup addr: %s", source_host)

        trap_oid = ""
        for variable in packet.variables:
            if variable.name in (SNMP_TRAP_OID, "snmpTrapOID"):
                if not isinstance(variable.value, str):
                    logger.error(
                        "Unable to handle non string trap_oid type [%s=%s] from %s",
                        variable.name,
                        type(variable.value).__name__,
                        source_ip,
                    )
                    return None
                trap_oid = variable.value
            elif self.verbose:
                logger.debug("Variable %s from %s", variable.name, source_ip)

        event: NormalizedEvent = {
            "eventSource": source_ip,
            "eventSourceHost": source_host,
            "eventSourceShortHost": short_host,
        }

        definition = self.registry.lookup_trap(trap_oid)
        if definition is not None:
            event["name"] = definition.name
            event["eventType"] = definition.event_type or self.default_event_type
            event["device"] = definition.device
            self.populate_variables(event, packet, definition)
        else:
            if self.verbose:
                logger.warning(
                    "Lookup of trap OID[%s] failed. Consider adding it to the trap definition files",
                    trap_oid,
                )
            if self.drop_undeclared_traps:
                if self.verbose:
                    logger.warning(
                        "Ignoring undeclared trap %s from %s (version %s)",
                        trap_oid,
                        source_ip,
                        packet.version.name,
                    )
                return None
            event["name"] = trap_oid
            event["eventType"] = self.default_event_type
            event["device"] = self.default_device

        if self.verbose:
            logger.info("Adding event: %s", event)
        return event

    def variable_name(self, oid: str, definition: TrapDefinition) -> str:
        """Display name of a variable: trap metric, global metric, raw OID."""
        name = definition.metric_oid_to_name.get(oid)
        if name is not None:
            return name
        metric = self.registry.lookup_global_metric(oid)
        if metric is not None:
            return metric.metric_name
        return oid

    def coerce(self, variable: VarBind) -> FieldValue | None:
        """Convert a variable's value by wire type; None if unsupported."""
        if variable.type is WireType.OCTET_STRING:
            value = variable.value
            if isinstance(value, (bytes, bytearray)):
                return bytes(value).decode("utf-8", errors="replace")
            return str(value)
        if variable.type in INTEGER_TYPES:
            return int(variable.value)
        if variable.type is WireType.OBJECT_IDENTIFIER:
            oid = str(variable.value)
            label = self.registry.lookup_value_label(oid)
            if label is not None:
                return label
            return RawIdentifier(oid)
        logger.error(
            "%s=%r[type: %s] is of unknown type",
            variable.name,
            variable.value,
            variable.type.value,
        )
        return None

    def populate_variables(
        self,
        event: NormalizedEvent,
        packet: TrapPacket,
        definition: TrapDefinition,
    ) -> None:
        for variable in packet.variables:
            if not variable.name:
                continue
            try:
                value = self.coerce(variable)
            except (TypeError, ValueError) as exc:
                logger.error("Unable to decode %s: %s", variable.name, exc)
                continue
            if value is None:
                continue
            event[self.variable_name(variable.name, definition)] = value
