"""Scrape state enumeration."""

from enum import Enum


class ScrapeState(Enum):
    """State of the most recent scrape."""

    IDLE = "idle"
    SCRAPING = "scraping"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_finished(self) -> bool:
        """
        Whether the scrape has reached a terminal state.

        Returns:
            bool: True for SUCCESS and FAILURE
        """
        return self in (ScrapeState.SUCCESS, ScrapeState.FAILURE)
