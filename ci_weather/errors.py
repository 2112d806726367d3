"""Exceptions that abort a processing run."""


class CiWeatherError(Exception):
    """Base for fatal input problems; the CLI exits non-zero on these."""


class ConfigError(CiWeatherError):
    """Configuration file missing or invalid."""


class InputError(CiWeatherError):
    """Raw runs file missing or unparseable."""
