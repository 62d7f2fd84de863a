class SchoolMapError(Exception):
    """Base class for errors raised by the map layer."""


class ConfigurationError(SchoolMapError):
    """The mount target is missing or unusable."""


class ViewportInitError(SchoolMapError):
    """The map capability failed to load or create a viewport."""


class MarkerCreationError(SchoolMapError):
    """A single record could not be turned into a marker."""

    def __init__(self, name: str, cause: Exception):
        super().__init__(f"could not create marker for {name!r}: {cause}")
        self.name = name
        self.cause = cause


class TeardownError(SchoolMapError):
    """Releasing a map resource failed."""
