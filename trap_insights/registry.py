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
from collections.abc import Iterable

from trap_insights.definitions import (
    DefinitionSet,
    MetricDefinition,
    TrapDefinition,
    normalize_oid,
)
from trap_insights.errors import RegistryFrozenError

logger = logging.getLogger(__name__)

SYS_UPTIME_OID = ".1.3.6.1.2.1.1.3.0"
SNMP_TRAP_OID = ".1.3.6.1.6.3.1.1.4.1.0"

# Generic traps from SNMPv2-MIB
STANDARD_TRAP_OIDS = {
    ".1.3.6.1.6.3.1.1.5.1": "ColdStart",
    ".1.3.6.1.6.3.1.1.5.2": "WarmStart",
    ".1.3.6.1.6.3.1.1.5.3": "LinkDown",
    ".1.3.6.1.6.3.1.1.5.4": "LinkUp",
    ".1.3.6.1.6.3.1.1.5.5": "AuthenticationFailure",
    ".1.3.6.1.6.3.1.1.5.6": "EGPNeighbourLoss",
}

STANDARD_METRIC_OIDS = {
    SYS_UPTIME_OID: "sysUptime",
    SNMP_TRAP_OID: "snmpTrapOID",
}


class DispatchRegistry:
    """Trap and metric definitions keyed by exact, normalized OID.

    The registry is populated once at startup and then frozen. After
    :meth:`freeze` it is only read, so the trap processor may consult it
    from any thread without locking.
    """

    def __init__(self) -> None:
        self._traps: dict[str, TrapDefinition] = {}
        self._metrics: dict[str, MetricDefinition] = {}
        self._value_labels: dict[str, str] = {}
        self._frozen = False

    @classmethod
    def with_builtins(cls, default_event_type: str, default_device: str) -> DispatchRegistry:
        """Create a registry seeded with the well-known traps and metrics."""
        registry = cls()
        for oid, name in STANDARD_TRAP_OIDS.items():
            registry.register(
                TrapDefinition(
                    name=name,
                    kind="trap",
                    trap_oid=oid,
                    event_type=default_event_type,
                    device=default_device,
                ),
            )
        for oid, metric_name in STANDARD_METRIC_OIDS.items():
            registry.register_metric(MetricDefinition(oid=oid, metric_name=metric_name))
        return registry

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            msg = "registry is frozen; definitions must be loaded before receiving traps"
            raise RegistryFrozenError(msg)

    def register(self, definition: TrapDefinition) -> None:
        """Insert a trap definition, replacing any with the same OID."""
        self._check_mutable()
        if not definition.trap_oid:
            logger.warning("Skipping trap definition %r without trap_oid", definition.name)
            return
        previous = self._traps.get(definition.trap_oid)
        if previous is not None and previous != definition:
            logger.warning(
                "Trap definition %r for %s overrides %r",
                definition.name,
                definition.trap_oid,
                previous.name,
            )
        self._traps[definition.trap_oid] = definition

    def register_metric(self, metric: MetricDefinition) -> None:
        self._check_mutable()
        self._metrics[normalize_oid(metric.oid)] = metric

    def register_value_label(self, oid: str, label: str) -> None:
        self._check_mutable()
        self._value_labels[normalize_oid(oid)] = label

    def register_all(self, definitions: DefinitionSet | Iterable[TrapDefinition]) -> None:
        """Register loaded definitions in order (last one wins)."""
        if isinstance(definitions, DefinitionSet):
            for oid, label in definitions.value_labels.items():
                self.register_value_label(oid, label)
            definitions = definitions.traps
        for definition in definitions:
            self.register(definition)

    def freeze(self) -> None:
        self._frozen = True
        logger.info(
            "Registry ready: %d trap definition(s), %d metric(s), %d value label(s)",
            len(self._traps),
            len(self._metrics),
            len(self._value_labels),
        )

    def lookup_trap(self, oid: str) -> TrapDefinition | None:
        return self._traps.get(oid)

    def lookup_global_metric(self, oid: str) -> MetricDefinition | None:
        return self._metrics.get(oid)

    def lookup_value_label(self, oid: str) -> str | None:
        return self._value_labels.get(oid)

    def __len__(self) -> int:
        return len(self._traps)

    def __contains__(self, oid: object) -> bool:
        return oid in self._traps
