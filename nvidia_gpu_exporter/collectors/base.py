"""Base collector abstract class for Prometheus collectors."""

from abc import ABC, abstractmethod
import logging
from typing import Iterable

from prometheus_client.core import Metric


class BaseCollector(ABC):
    """
    Abstract base class for collectors registered with a prometheus_client registry.

    A registry calls describe() once at registration time to learn metric
    names, and collect() on every scrape.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            logger: Logger instance
        """
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    def describe(self) -> Iterable[Metric]:
        """
        Describe the metrics this collector exports.

        Returns:
            Iterable[Metric]: Metric families without samples

        Note:
            Implementations must not perform a scrape here.
        """
        pass

    @abstractmethod
    def collect(self) -> Iterable[Metric]:
        """
        Perform one scrape and return metric families with samples.

        Returns:
            Iterable[Metric]: Collected metric families

        Note:
            Implementations should report failures through metrics rather
            than raising, so a broken target never breaks the endpoint.
        """
        pass
