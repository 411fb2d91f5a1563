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

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from pyasn1.codec.ber import decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ

# pylint: disable=import-error
from pysnmp.proto.api import v2c  # type: ignore # noqa: PGH003

from trap_insights.processor import (
    NormalizedEvent,
    SnmpVersion,
    TrapPacket,
    TrapProcessor,
    VarBind,
    WireType,
)

if TYPE_CHECKING:
    from trap_insights.dispatch import EventSink

logger = logging.getLogger(__name__)

PacketHandler = Callable[[TrapPacket, tuple[str, int]], None]

DEFAULT_TIMEOUT = 10.0


def format_oid(oid: Any) -> str:
    """Render an OID object as an absolute dotted string."""
    return "." + ".".join([str(x) for x in oid])


def wire_type_of(value: Any) -> WireType | None:
    """Map a pysnmp/pyasn1 value to its wire type by class name.

    The class hierarchy is walked so that e.g. ``Integer32`` resolves to
    INTEGER and ``ObjectName`` to OBJECT_IDENTIFIER.
    """
    for cls in type(value).__mro__:
        try:
            return WireType(cls.__name__)
        except ValueError:
            continue
    return None


def varbind_from_pysnmp(oid: Any, value: Any) -> VarBind:
    """Convert one pysnmp (oid, value) pair into a :class:`VarBind`."""
    while isinstance(value, univ.Choice):
        value = value.getComponent()

    wire_type = wire_type_of(value)
    if wire_type is None:
        return VarBind(format_oid(oid), WireType.NULL, str(value))

    converted: Any
    if wire_type is WireType.OBJECT_IDENTIFIER:
        converted = format_oid(value)
    elif wire_type in (WireType.OCTET_STRING, WireType.OPAQUE, WireType.BITS):
        converted = bytes(value)
    elif wire_type is WireType.IP_ADDRESS:
        converted = ".".join([str(x) for x in bytes(value)])
    elif isinstance(value, univ.Null):
        converted = None
    else:
        converted = int(value)
    return VarBind(format_oid(oid), wire_type, converted)


def decode_community_message(data: bytes) -> TrapPacket | None:
    """Decode an SNMPv2c trap message.

    Returns None for well formed messages that are not traps. Raises
    ``PyAsn1Error`` when the data is not an SNMPv2c message at all.
    """
    whole_msg, _ = decoder.decode(data, asn1Spec=v2c.Message())

    pdu = whole_msg["data"].getComponent()
    if pdu.tagSet != v2c.SNMPv2TrapPDU.tagSet:
        logger.debug("Not an SNMPv2 trap PDU")
        return None

    variables = [
        varbind_from_pysnmp(var_bind["name"], var_bind[1])
        for var_bind in pdu["variable-bindings"]
    ]
    return TrapPacket(
        version=SnmpVersion(int(whole_msg["version"])),
        community=bytes(whole_msg["community"]).decode("utf-8", errors="replace"),
        variables=variables,
    )


class CommunityTrapProtocol(asyncio.DatagramProtocol):
    """UDP listener for community (v2c) traps."""

    def __init__(self, handler: PacketHandler) -> None:
        self.handler = handler
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Called when the UDP socket is created."""
        self.transport = transport  # type: ignore[assignment]
        logger.info("SNMP trap listener started on %s", transport.get_extra_info("sockname"))

    def connection_lost(self, exc: Exception | None) -> None:
        logger.info("SNMP trap listener connection lost")

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Called when a UDP datagram is received."""
        try:
            packet = decode_community_message(data)
        except (PyAsn1Error, ValueError) as exc:
            logger.debug("Error parsing SNMPv2c trap from %s: %s", addr[0], exc)
            return
        if packet is not None:
            self.handler(packet, addr)


class UsmNotificationHandler:
    """pysnmp notification receiver callback for USM (v3) sessions."""

    def __init__(self, handler: PacketHandler) -> None:
        self.handler = handler

    def __call__(
        self,
        snmp_engine: Any,
        state_reference: Any,
        context_engine_id: Any,
        context_name: Any,
        var_binds: Any,
        cb_ctx: Any,
    ) -> None:
        _, transport_address = snmp_engine.message_dispatcher.get_transport_info(state_reference)
        try:
            variables = [varbind_from_pysnmp(oid, val) for oid, val in var_binds]
        except (PyAsn1Error, ValueError) as exc:
            logger.error("Error decoding SNMPv3 trap from %s: %s", transport_address[0], exc)
            return
        packet = TrapPacket(version=SnmpVersion.V3, variables=variables)
        self.handler(packet, (str(transport_address[0]), int(transport_address[1])))


class TrapReceiver:
    """Run the trap processor for each received packet and enqueue events.

    Processing happens in a thread pool because the reverse host name
    lookup blocks. Each packet gets ``timeout`` seconds.
    """

    def __init__(
        self,
        processor: TrapProcessor,
        sink: EventSink,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int | None = None,
    ) -> None:
        self.processor = processor
        self.sink = sink
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="trap")
        self._tasks: set[asyncio.Task[Any]] = set()

    def __call__(self, packet: TrapPacket, addr: tuple[str, int]) -> None:
        task = asyncio.ensure_future(self.handle(packet, addr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, packet: TrapPacket, addr: tuple[str, int]) -> NormalizedEvent | None:
        """Process one packet and hand the resulting event to the sink."""
        source_ip = addr[0]
        loop = asyncio.get_running_loop()
        try:
            event = await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.processor.process, packet, source_ip),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Timed out processing trap from %s", source_ip)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing SNMP trap from %s: %s", source_ip, exc)
            return None

        if event is None:
            return None
        self.sink.enqueue_event(event)
        return event

    def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._executor.shutdown(wait=False)
