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

"""SNMP receive sessions.

A community session is a plain asyncio UDP endpoint whose datagrams are
decoded directly. A USM session runs a pysnmp engine so that the
authentication and privacy layers are handled by pysnmp.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass, field
from typing import Any

# pylint: disable=import-error
from pysnmp.carrier.asyncio.dgram import udp  # type: ignore # noqa: PGH003
from pysnmp.carrier.error import CarrierError  # type: ignore # noqa: PGH003
from pysnmp.entity import config, engine  # type: ignore # noqa: PGH003
from pysnmp.entity.rfc3413 import ntfrcv  # type: ignore # noqa: PGH003
from pysnmp.proto.api import v2c  # type: ignore # noqa: PGH003

from trap_insights.errors import SessionError
from trap_insights.receiver import (
    DEFAULT_TIMEOUT,
    CommunityTrapProtocol,
    PacketHandler,
    UsmNotificationHandler,
)
from trap_insights.security import (
    AUTH_NO_PRIV,
    AUTH_PRIV,
    SecurityConfig,
    UsmSecurity,
)

logger = logging.getLogger(__name__)

AUTH_PROTOCOLS = {
    "MD5": config.USM_AUTH_HMAC96_MD5,
    "SHA": config.USM_AUTH_HMAC96_SHA,
}

PRIV_PROTOCOLS = {
    "AES": config.USM_PRIV_CFB128_AES,
    "DES": config.USM_PRIV_CBC56_DES,
}


@dataclass
class Session:
    """The live receive endpoint and the parameters it was opened with."""

    host: str
    port: int
    security: SecurityConfig
    timeout: float = DEFAULT_TIMEOUT
    transport: asyncio.DatagramTransport | None = field(default=None, repr=False)
    snmp_engine: Any = field(default=None, repr=False)

    @property
    def version(self) -> str:
        return "v3" if isinstance(self.security, UsmSecurity) else "v2c"

    @property
    def connected(self) -> bool:
        return self.transport is not None or self.snmp_engine is not None


def usm_protocols(security: UsmSecurity) -> tuple[Any, Any]:
    """Return the pysnmp auth and privacy protocol IDs for ``security``."""
    level = security.security_level
    auth_protocol = config.USM_AUTH_NONE
    priv_protocol = config.USM_PRIV_NONE
    if level in (AUTH_PRIV, AUTH_NO_PRIV):
        auth_protocol = AUTH_PROTOCOLS[security.auth_protocol_name]
    if level == AUTH_PRIV:
        priv_protocol = PRIV_PROTOCOLS[security.priv_protocol_name]
    return auth_protocol, priv_protocol


def _add_usm_user(snmp_engine: Any, security: UsmSecurity) -> None:
    auth_protocol, priv_protocol = usm_protocols(security)

    kwargs: dict[str, Any] = {}
    if security.engine_id:
        kwargs["securityEngineId"] = v2c.OctetString(hexValue=security.engine_id)

    config.add_v3_user(
        snmp_engine,
        security.username,
        auth_protocol,
        security.auth_passphrase or None,
        priv_protocol,
        security.priv_passphrase or None,
        **kwargs,
    )
    logger.info("SNMPv3 user %s configured (%s)", security.username, security.security_level)


async def _connect_community(session: Session, handler: PacketHandler) -> None:
    loop = asyncio.get_running_loop()
    try:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: CommunityTrapProtocol(handler),
            local_addr=(session.host, session.port),
        )
    except OSError as exc:
        msg = f"error connecting to target {session.host}:{session.port}: {exc}"
        raise SessionError(msg) from exc
    session.transport = transport


def _bind_socket(host: str, port: int) -> socket.socket:
    """Bind the USM listen socket; pysnmp only schedules its own bind."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        msg = f"error connecting to target {host}:{port}: {exc}"
        raise SessionError(msg) from exc
    sock.setblocking(False)
    return sock


def _connect_usm(session: Session, security: UsmSecurity, handler: PacketHandler) -> None:
    sock = _bind_socket(session.host, session.port)
    snmp_engine = engine.SnmpEngine()
    try:
        config.add_transport(
            snmp_engine,
            udp.DOMAIN_NAME,
            udp.UdpTransport().open_server_mode(sock=sock),
        )
    except CarrierError as exc:
        sock.close()
        msg = f"error connecting to target {session.host}:{session.port}: {exc}"
        raise SessionError(msg) from exc

    _add_usm_user(snmp_engine, security)
    ntfrcv.NotificationReceiver(snmp_engine, UsmNotificationHandler(handler))
    session.snmp_engine = snmp_engine


async def connect(
    host: str,
    port: int,
    security: SecurityConfig,
    handler: PacketHandler,
) -> Session:
    """Open the trap receive endpoint.

    Args:
    ----
        host: Address to bind.
        port: UDP port to bind.
        security: Community or USM credentials.
        handler: Called with every decoded trap and its source address.

    Returns:
    -------
        The connected session.

    Raises:
    ------
        SessionError: The endpoint could not be bound.
    """
    session = Session(host=host, port=port, security=security)
    if isinstance(security, UsmSecurity):
        _connect_usm(session, security, handler)
    else:
        await _connect_community(session, handler)
    logger.info("trapd listen address is %s:%s (%s)", host, port, session.version)
    return session


def disconnect(session: Session) -> None:
    """Close the session. Failures are logged and otherwise ignored."""
    try:
        if session.transport is not None:
            session.transport.close()
            session.transport = None
        if session.snmp_engine is not None:
            session.snmp_engine.transport_dispatcher.close_dispatcher()
            session.snmp_engine = None
    except Exception as exc:  # noqa: BLE001
        logger.error("error disconnecting from target %s:%s: %s", session.host, session.port, exc)
