"""Error types raised by the reconciliation engine and its collaborators."""

import errno


class SyncError(Exception):
    """Base class for reconciliation failures.

    Every error carries a short classification and a remediation hint so the
    interactive layer can show both next to the underlying message.
    """

    classification = "Sync failed"
    remediation = "See the error details and retry."

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        return f"{self.classification}: {self.message}"

    def user_message(self) -> str:
        """Classification, underlying message and remediation in one string."""
        return f"{self}\n{self.remediation}"


class NotConfiguredError(SyncError):
    classification = "Not configured"
    remediation = "Link an external file first (shelf-sync link PATH)."


class ExternalFileNotFoundError(SyncError):
    classification = "File not found"
    remediation = "Check that the external file path is correct and the file exists."


class PermissionDeniedError(SyncError):
    classification = "Permission denied"
    remediation = "Check the file permissions and make sure the file is writable."


class FileAccessError(SyncError):
    classification = "File access failed"
    remediation = "Check the file and the disk, then retry."


class DiskFullError(FileAccessError):
    classification = "Disk full"
    remediation = "Free up disk space and retry."


class TooManyOpenFilesError(FileAccessError):
    classification = "Too many open files"
    remediation = "Close other programs holding files open, then retry."


class CapabilityUnavailableError(FileAccessError):
    classification = "File API unavailable"
    remediation = "This environment cannot access files on disk; use the desktop build."


class FileEncodingError(FileAccessError):
    classification = "Unreadable encoding"
    remediation = "Save the file as UTF-8 and retry."


class EmptyFileError(SyncError):
    classification = "External file is empty"
    remediation = "Restore the file from a backup or push the cache to it."


class ParseEmptyResultError(SyncError):
    classification = "Parse failed"
    remediation = "The file looks like it contains books but none could be parsed; check its format."


class SyncTimeoutError(SyncError):
    classification = "Timed out"
    remediation = "The file may be locked by another program; retry in a moment."


class ReadTimeoutError(SyncTimeoutError):
    classification = "File read timed out"


class CheckTimeoutError(SyncTimeoutError):
    classification = "Version check timed out"


class CheckInProgressError(SyncError):
    classification = "Check already running"
    remediation = "Wait for the current version check to finish."


def classify_os_error(exc: OSError, path: str) -> SyncError:
    """Map an OSError from a file operation onto the sync error taxonomy."""
    detail = exc.strerror or str(exc)
    code = exc.errno

    if isinstance(exc, FileNotFoundError) or code in (errno.ENOENT, errno.ENOTDIR):
        return ExternalFileNotFoundError(f"{path}: {detail}", path=path)
    if isinstance(exc, PermissionError) or code in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError(f"{path}: {detail}", path=path)
    if code == errno.ENOSPC:
        return DiskFullError(f"{path}: {detail}", path=path)
    if code in (errno.EMFILE, errno.ENFILE):
        return TooManyOpenFilesError(f"{path}: {detail}", path=path)
    return FileAccessError(f"{path}: {detail}", path=path)
