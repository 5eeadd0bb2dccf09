class TbfwException(Exception):
    """Base class for tbfwquery exceptions"""

    pass


class MalformedVersion(TbfwException):
    """A version string (or version key) that cannot be parsed"""

    pass


class MountError(TbfwException):
    """Mounting a disk image failed"""

    pass


class MountTrackingError(RuntimeError):
    """A mount was released without being tracked.

    This is a reference-counting bug, not a recoverable condition, so it does not
    inherit from TbfwException.
    """

    pass


class ResolutionError(TbfwException):
    """Unable to resolve an installer"""

    pass


class MissingSystemImage(ResolutionError):
    pass


class VersionNotFound(ResolutionError):
    pass


class ExtractionError(TbfwException):
    """Firmware extraction failed for an installer"""

    pass


class PackageNotFound(ExtractionError):
    pass


class ExpansionFailed(ExtractionError):
    pass


class UpdaterNotFound(ExtractionError):
    pass


class DescriptorError(TbfwException):
    """Invalid firmware descriptor or configuration file"""

    pass


class DatabaseException(TbfwException):
    """Firmware database exceptions"""

    pass


class LoadError(DatabaseException):
    pass


class SaveError(DatabaseException):
    pass


class SettingsError(TbfwException):
    """Invalid value in a TBFW_ environment variable"""

    pass
