"""
Exit Codes - Process exit status for each way a command can end.
"""

from enum import IntEnum

from ..core.exceptions import ErrorKind


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    NOT_FOUND = 4
    CANCELLED = 130  # 128 + SIGINT

    @classmethod
    def from_error_kind(cls, kind: ErrorKind) -> "ExitCode":
        return _BY_KIND.get(kind, cls.ERROR)


_BY_KIND = {
    ErrorKind.AUTHENTICATION: ExitCode.AUTH_ERROR,
    ErrorKind.NOT_FOUND: ExitCode.NOT_FOUND,
    ErrorKind.CANCELLED: ExitCode.CANCELLED,
    ErrorKind.CONFIGURATION: ExitCode.CONFIG_ERROR,
}
