"""Receive SNMP traps and forward them to New Relic Insights as events."""

__version__ = "1.0.0"
