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

import logging
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)

AUTH_PROTOCOL_NAMES = ("MD5", "SHA")
PRIV_PROTOCOL_NAMES = ("AES", "DES")

AUTH_PRIV = "authPriv"
AUTH_NO_PRIV = "authNoPriv"
NO_AUTH_NO_PRIV = "noAuthNoPriv"


@dataclass(frozen=True)
class CommunitySecurity:
    community: str = "public"

    def __post_init__(self) -> None:
        object.__setattr__(self, "community", self.community.strip())


@dataclass(frozen=True)
class UsmSecurity:
    """User-based security model credentials.

    ``engine_id`` is the hex encoded engine ID of the sending agent. USM
    only accepts unacknowledged traps from engines it knows about.
    """

    username: str
    auth_protocol: str = "MD5"
    auth_passphrase: str = ""
    priv_protocol: str = "AES"
    priv_passphrase: str = ""
    engine_id: str = ""

    @property
    def security_level(self) -> str:
        if self.auth_passphrase and self.priv_passphrase:
            return AUTH_PRIV
        if self.auth_passphrase:
            return AUTH_NO_PRIV
        return NO_AUTH_NO_PRIV

    @property
    def auth_protocol_name(self) -> str:
        name = self.auth_protocol.strip().upper()
        if name not in AUTH_PROTOCOL_NAMES:
            logger.error("invalid auth_protocol %r. Defaulting to MD5", self.auth_protocol)
            return "MD5"
        return name

    @property
    def priv_protocol_name(self) -> str:
        name = self.priv_protocol.strip().upper()
        if name not in PRIV_PROTOCOL_NAMES:
            logger.error("invalid priv_protocol %r. Defaulting to AES", self.priv_protocol)
            return "AES"
        return name


SecurityConfig = Union[CommunitySecurity, UsmSecurity]
