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

"""Process configuration.

The configuration file is YAML with every setting under ``collect``::

    collect:
      account_id: "1234567"
      insert_key: NRII-xxxx
      nr_region: US
      event_type: SNMPTrapSample
      snmp_device: unknown
      drop_undeclared_traps: false
      snmp_host: 0.0.0.0
      snmp_port: 162
      community: public
      trap_definition_files: traps.yml,vendor-traps.yml
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from trap_insights.errors import ConfigError
from trap_insights.security import CommunitySecurity, SecurityConfig, UsmSecurity

logger = logging.getLogger(__name__)

DEFAULT_PROXY_PORT = 80


@dataclass(frozen=True)
class Settings:
    account_id: int
    insert_key: str
    nr_region: str = "US"
    event_type: str = "SNMPTrapSample"
    snmp_device: str = ""
    drop_undeclared_traps: bool = False
    snmp_host: str = "0.0.0.0"
    snmp_port: int = 162
    http_proxy_host: str = ""
    http_proxy_port: int = 0
    community: str = "public"
    v3: bool = False
    username: str = ""
    auth_protocol: str = ""
    auth_passphrase: str = ""
    priv_protocol: str = ""
    priv_passphrase: str = ""
    engine_id: str = ""
    trap_definition_files: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """Build settings from the ``collect`` mapping of a config file."""
        account_id = data.get("account_id")
        try:
            account_id = int(str(account_id).strip())
        except ValueError as exc:
            msg = f"account_id is required and must be numeric, got {account_id!r}"
            raise ConfigError(msg) from exc

        insert_key = _str(data, "insert_key")
        if not insert_key:
            msg = "insert_key is required"
            raise ConfigError(msg)

        return cls(
            account_id=account_id,
            insert_key=insert_key,
            nr_region=_str(data, "nr_region", "US"),
            event_type=_str(data, "event_type", "SNMPTrapSample"),
            snmp_device=_str(data, "snmp_device"),
            drop_undeclared_traps=_bool(data, "drop_undeclared_traps"),
            snmp_host=_str(data, "snmp_host", "0.0.0.0"),
            snmp_port=_int(data, "snmp_port", 162),
            http_proxy_host=_str(data, "http_proxy_host"),
            http_proxy_port=_int(data, "http_proxy_port", 0),
            community=_str(data, "community", "public"),
            v3=_bool(data, "v3"),
            username=_str(data, "username"),
            auth_protocol=_str(data, "auth_protocol"),
            auth_passphrase=_str(data, "auth_passphrase"),
            priv_protocol=_str(data, "priv_protocol"),
            priv_passphrase=_str(data, "priv_passphrase"),
            engine_id=_str(data, "engine_id"),
            trap_definition_files=_str(data, "trap_definition_files"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        try:
            with open(path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except OSError as exc:
            msg = f"cannot read configuration file {path}: {exc}"
            raise ConfigError(msg) from exc
        except yaml.YAMLError as exc:
            msg = f"invalid YAML in {path}: {exc}"
            raise ConfigError(msg) from exc

        if not isinstance(document, Mapping) or not isinstance(document.get("collect"), Mapping):
            msg = f"{path}: expected a 'collect' mapping"
            raise ConfigError(msg)
        return cls.from_mapping(document["collect"])

    @property
    def http_proxy(self) -> str:
        if not self.http_proxy_host:
            return ""
        return f"http://{self.http_proxy_host}:{self.http_proxy_port or DEFAULT_PROXY_PORT}"

    def apply_proxy(self, environ: MutableMapping[str, str] | None = None) -> None:
        """Export the proxy for the outbound Insights client."""
        if environ is None:
            environ = os.environ
        proxy = self.http_proxy
        if not proxy:
            logger.info("Proxy not specified")
            return
        environ["HTTP_PROXY"] = proxy
        environ["HTTPS_PROXY"] = proxy
        logger.info("Proxy set to %s", proxy)

    def security(self) -> SecurityConfig:
        if self.v3:
            return UsmSecurity(
                username=self.username,
                auth_protocol=self.auth_protocol or "MD5",
                auth_passphrase=self.auth_passphrase,
                priv_protocol=self.priv_protocol or "AES",
                priv_passphrase=self.priv_passphrase,
                engine_id=self.engine_id,
            )
        return CommunitySecurity(self.community)


def _str(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        msg = f"{key} must be a scalar"
        raise ConfigError(msg)
    return str(value).strip()


def _int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"{key} must be an integer, got {value!r}"
        raise ConfigError(msg) from exc


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1", "false", "no", "0", ""):
        return value.strip().lower() in ("true", "yes", "1")
    msg = f"{key} must be a boolean, got {value!r}"
    raise ConfigError(msg)
