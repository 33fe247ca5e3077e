"""Scrape pipeline exceptions."""

from __future__ import annotations


class ScrapeError(Exception):
    """A scrape operation failed before producing a record."""

    stage = "scrape"

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class InvalidURLError(ScrapeError):
    """URL could not be parsed or does not use http/https."""

    stage = "validating"


class FetchError(ScrapeError):
    """Page request failed at the transport level or returned non-2xx."""

    stage = "fetching"


class ParseError(ScrapeError):
    """Response body could not be parsed as a document."""

    stage = "parsing"


class InvalidRequestError(ValueError):
    """Request shape rejected before any I/O (empty field, batch too large)."""
