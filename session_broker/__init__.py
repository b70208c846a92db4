"""Shared Session Broker: one signed-in upstream session served to many visitors."""

__version__ = "0.1.0"
