"""Registration of discovered devices."""

from .orchestrator import BridgeOrchestrator
from .registrar import HttpRegistrar, LoggingRegistrar, Registrar, create_registrar

__all__ = ["BridgeOrchestrator", "HttpRegistrar", "LoggingRegistrar", "Registrar", "create_registrar"]
