"""
Collector factory for loading energy collectors by type.
"""
from typing import Dict
from .base import BaseCollector
from .results import DomainReading, MetricDescriptor, SampleResult, SampleStatus


def get_collector(collector_type: str, config: Dict) -> BaseCollector:
    """
    Factory function to get the appropriate collector for a collector type.

    Args:
        collector_type: Type of collector (e.g., "rapl")
        config: Configuration dictionary

    Returns:
        Initialized collector instance

    Raises:
        ValueError: If collector_type is not supported
    """
    collector_type = collector_type.lower()

    if collector_type in ("rapl", "intel_rapl"):
        from .rapl import RaplCollector
        return RaplCollector(config)

    else:
        raise ValueError(
            f"Unsupported collector type: {collector_type}. "
            f"Supported types: rapl, intel_rapl"
        )


__all__ = [
    "BaseCollector",
    "DomainReading",
    "MetricDescriptor",
    "SampleResult",
    "SampleStatus",
    "get_collector",
]
