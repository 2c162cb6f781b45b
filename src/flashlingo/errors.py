"""Errors surfaced to the learner during practice."""


class FlashlingoError(Exception):
    """Base class for recoverable trainer errors."""


class GenerationError(FlashlingoError):
    """The word source failed or returned an invalid payload."""


class ConfigurationMissingError(FlashlingoError):
    """No API key is available to call the word source."""


class StoreCorruptionError(FlashlingoError):
    """A persisted value could not be decoded."""
