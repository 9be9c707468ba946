"""Exceptions raised by the attachment subsystem."""

import errno


class AttachError(Exception):
    """Base class for all attachment errors."""


class FsError(AttachError, OSError):
    """A filesystem operation failed.

    Instances keep errno, strerror and filenames of the underlying OSError.
    """


class NotFound(FsError, FileNotFoundError):
    """The path does not exist."""


class AlreadyExists(FsError, FileExistsError):
    """The target path already exists."""


class InvalidLink(FsError):
    """The path is not a symbolic link."""


class DirectoryNotEmpty(FsError):
    """The directory still has entries."""


class IsDirectory(FsError, IsADirectoryError):
    """A file operation was attempted on a directory."""


class OtherOSError(FsError):
    """Any other error reported by the operating system."""


class NoAttachmentDirectory(AttachError):
    """The node has no attachment directory."""


class CannotDetermineName(AttachError, ValueError):
    """The attachment source has no usable base name."""


class IdPathResolutionFailed(AttachError):
    """No ID-to-path strategy produced a directory."""


class UserCancelled(AttachError):
    """The user aborted an interactive prompt."""

    def __init__(self, message: str = "Cancelled") -> None:
        super().__init__(message)


class InvalidConfiguration(AttachError, ValueError):
    """A configuration option has an unrecognized value."""


_ERRNO_CLASSES: dict[int, type[FsError]] = {
    errno.ENOENT: NotFound,
    errno.EEXIST: AlreadyExists,
    errno.ENOTEMPTY: DirectoryNotEmpty,
    errno.EISDIR: IsDirectory,
}


def translate_os_error(err: OSError) -> FsError:
    """Map an OSError onto the attachment error taxonomy by errno."""
    if isinstance(err, FsError):
        return err
    if err.errno is None:
        return OtherOSError(*err.args)
    cls = _ERRNO_CLASSES.get(err.errno or 0, OtherOSError)
    return cls(err.errno, err.strerror, err.filename, None, err.filename2)
