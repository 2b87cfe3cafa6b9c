from __future__ import annotations


class CommatrixError(Exception):
    """
    Base class for every failure of a matrix run.

    exit_code is what the CLI returns when the error reaches the top level.
    """

    exit_code = 1


class InvalidConfiguration(CommatrixError):
    exit_code = 2


class UnsupportedFormat(InvalidConfiguration):
    pass


class InvalidEnvironment(InvalidConfiguration):
    pass


class SourceUnavailable(CommatrixError):
    exit_code = 3


class FileAccessError(CommatrixError):
    exit_code = 4


class DecodeError(CommatrixError):
    exit_code = 5


class NoPortsForRole(CommatrixError):
    exit_code = 6


class RemoteExecutionError(CommatrixError):
    exit_code = 7


class SocketParseError(RemoteExecutionError):
    """
    A node returned socket output that could not be parsed.
    """
