"""Exceptions raised by the savings and impact engines."""


class SolarNexusError(Exception):
    """Base exception for solarnexus errors."""
    pass


class NotFoundError(SolarNexusError):
    """An organization or site id does not resolve."""
    pass


class InvalidEnergyDataError(SolarNexusError, ValueError):
    """Energy data could not be interpreted as daily totals or hourly records."""
    pass


class InvalidTimeError(SolarNexusError, ValueError):
    """A time string is not in HH:MM format."""
    pass


class SolaxError(SolarNexusError):
    """SolaX Cloud API request failed or returned an error code."""
    pass
