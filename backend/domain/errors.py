"""
Error kinds raised by the location data pipeline.

Everything under LocationDataError is recovered by the loader by switching to
the bundled dataset; none of them should reach an end user.
"""


class LocationDataError(Exception):
    """Base class for recoverable data-source failures."""


class RemoteUnavailable(LocationDataError):
    """Network error, timeout or non-success status from the geodata service."""


class MalformedResponse(LocationDataError):
    """The geodata service answered, but the payload could not be parsed."""


class NoUsableRecords(LocationDataError):
    """The remote call succeeded but normalization produced zero points."""


class FallbackDataError(LocationDataError):
    """The bundled dataset is missing, unreadable or has no valid records."""


class RenderSurfaceUnavailable(Exception):
    """The map surface could not be created (e.g. no container to draw into)."""
