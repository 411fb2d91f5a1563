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


class TrapInsightsError(Exception):
    """Base class for errors raised by trap_insights."""


class ConfigError(TrapInsightsError):
    """The process configuration is unreadable or invalid."""


class ConfigParseError(TrapInsightsError, ValueError):
    """A trap definition source could not be read or decoded."""


class RegistryFrozenError(TrapInsightsError):
    """A definition was registered after trap reception started."""


class SessionError(TrapInsightsError, ConnectionError):
    """The SNMP receive session could not be established."""


class InsightsError(TrapInsightsError):
    """Delivery of a batch of events to Insights failed."""
