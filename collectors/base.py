"""
Base collector abstract class for energy metrics collection.
"""
from abc import ABC, abstractmethod
from typing import List
import logging

from .results import MetricDescriptor, SampleResult


class BaseCollector(ABC):
    """
    Abstract base class for all energy collectors.
    Each collector must implement sample() and describe().
    """

    def __init__(self, config: dict):
        """
        Initialize collector with configuration.

        Args:
            config: Configuration dictionary from config loader
        """
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def sample(self) -> SampleResult:
        """
        Read every known domain once.

        Returns:
            SampleResult whose status tells the caller whether data is
            complete (OK), partial (PARTIAL) or unavailable (NO_DATA).
        """
        pass

    @abstractmethod
    def describe(self) -> List[MetricDescriptor]:
        """
        Return metadata for the metrics this collector produces.

        Returns:
            List of MetricDescriptor (name, help text, label names)
        """
        pass

    def safe_sample(self) -> SampleResult:
        """
        Wrapper that catches unexpected exceptions and returns NO_DATA.
        This ensures the exporter keeps serving even if a sample blows up.

        Returns:
            SampleResult from sample(), or a NO_DATA result on failure
        """
        try:
            return self.sample()
        except Exception as e:
            self.logger.error(f"Failed to collect metrics: {e}", exc_info=True)
            return SampleResult.no_data()
