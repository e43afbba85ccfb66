"""Discovery aggregation and capability classification."""

from .classifier import CAPABILITY_TYPES, classify, explain
from .collector import DiscoveryCollector

__all__ = ["CAPABILITY_TYPES", "DiscoveryCollector", "classify", "explain"]
