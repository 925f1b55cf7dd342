"""
Error taxonomy for offload runs.

Two families live here:

- Exceptions that abort a run before any work starts (``ConfigurationError``
  and friends). These are raised.
- ``ErrorKind``, the vocabulary for per-unit copy failures. These are never
  raised past the copy loop; they travel as data inside ``CopyError``.
"""

import errno
from enum import Enum


class OffloadError(Exception):
    """Base class for all offload exceptions."""


class ConfigurationError(OffloadError):
    """Bad invocation: nothing was attempted."""


class SourceNotFound(ConfigurationError):
    """Source root does not exist or is not a directory."""


class InvalidRelativePath(OffloadError):
    """A scanned file is not located under the source root."""


class ErrorKind(Enum):
    """
    Per-unit failure kinds.

    The values are the names exposed to callers, reports and logs.

    Attributes
    ----------
    SOURCE_READ : str
        Source file could not be opened or read
    DESTINATION_PREPARE : str
        Destination directory could not be created
    DESTINATION_WRITE : str
        Destination file could not be opened, written or closed
    PERMISSION : str
        Permission denied on either side
    """

    SOURCE_READ = "SourceReadError"
    DESTINATION_PREPARE = "DestinationPrepareError"
    DESTINATION_WRITE = "DestinationWriteError"
    PERMISSION = "PermissionError"

    @classmethod
    def classify(cls, exc: BaseException, fallback: "ErrorKind") -> "ErrorKind":
        """
        Map an exception raised during one copy phase to an error kind.

        Parameters
        ----------
        exc : BaseException
            Exception raised by the I/O layer
        fallback : ErrorKind
            Kind for the phase the exception was raised in

        Returns
        -------
        ErrorKind
            ``PERMISSION`` for access errors, ``fallback`` otherwise
        """
        if isinstance(exc, PermissionError):
            return cls.PERMISSION
        if isinstance(exc, OSError) and exc.errno in (errno.EACCES, errno.EPERM):
            return cls.PERMISSION
        return fallback
