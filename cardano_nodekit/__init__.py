"""Cardano-NodeKit: producer/standby failover tools for cardano-node hosts."""

__version__ = "0.3.0"
