# Copyright (c) 2013-2025, Andrea Zoppi
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

r"""Common types and error classes."""

import enum
import os
from typing import Any
from typing import NamedTuple
from typing import Optional
from typing import Type
from typing import Union

try:
    from typing import TypeAlias
except ImportError:  # pragma: no cover
    TypeAlias = Any  # Python < 3.10

AnyBytes: TypeAlias = Union[bytes, bytearray, memoryview]
AnyPath: TypeAlias = Union[bytes, bytearray, str, os.PathLike]
EllipsisType: TypeAlias = Type['Ellipsis']


class ErrorKind(enum.Enum):
    r"""Classification of decoding errors."""

    TRUNCATED = 'truncated'
    r"""Line too short to hold a record."""

    START_CODE = 'start_code'
    r"""Wrong start code."""

    HEX_VALUE = 'hex_value'
    r"""Non-hexadecimal content within a field."""

    LENGTH = 'length'
    r"""Line length not matching the byte count."""

    RECORD_TYPE = 'record_type'
    r"""Unsupported record type code."""

    CHECKSUM = 'checksum'
    r"""Checksum mismatch."""

    EXTENSION_LENGTH = 'extension_length'
    r"""Wrong data size for an address extension record."""

    AFTER_EOF = 'after_eof'
    r"""Record found after the End Of File record."""


class FormatError(ValueError):
    r"""Malformed record file.

    Raised by the loader upon the first decoding error.

    Attributes:
        message (str):
            Human readable diagnostic.

        line_number (int):
            1-based line number where the error occurred, or ``None`` when
            raised outside of a stream (e.g. by :meth:`IhexRecord.parse`).

        kind (:class:`ErrorKind`):
            Error classification.

    Examples:
        >>> from ihexload.base import ErrorKind, FormatError
        >>> str(FormatError('truncated record', 3, ErrorKind.TRUNCATED))
        'line 3: truncated record'
        >>> str(FormatError('truncated record'))
        'truncated record'
    """

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        kind: Optional[ErrorKind] = None,
    ):

        super().__init__(message)
        self.message: str = message
        self.line_number: Optional[int] = line_number
        self.kind: Optional[ErrorKind] = kind

    def __str__(self) -> str:

        if self.line_number is None:
            return self.message
        return f'line {self.line_number}: {self.message}'


class RecordError(NamedTuple):
    r"""Decoding error, not bound to any line."""

    kind: ErrorKind
    message: str

    def to_exception(self, line_number: Optional[int] = None) -> FormatError:
        r"""Builds the matching :class:`FormatError`.

        Args:
            line_number (int):
                Line number to attach, if known.

        Returns:
            :class:`FormatError`: Exception object, not raised.
        """

        return FormatError(self.message, line_number, self.kind)


class Result(NamedTuple):
    r"""Outcome of a decoding step.

    Holds either a `value` or an `error`, never both.

    Examples:
        >>> from ihexload.base import ErrorKind, Result
        >>> Result.success(123).ok
        True
        >>> result = Result.failure(ErrorKind.TRUNCATED, 'truncated record')
        >>> result.ok
        False
        >>> result.error.message
        'truncated record'
    """

    value: Any = None
    error: Optional[RecordError] = None

    @property
    def ok(self) -> bool:
        r"""bool: No error."""

        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> 'Result':

        return cls(value, None)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> 'Result':

        return cls(None, RecordError(kind, message))

    def unwrap(self, line_number: Optional[int] = None) -> Any:
        r"""Returns the value, or raises the error.

        Args:
            line_number (int):
                Line number to attach to the raised error, if any.

        Returns:
            The wrapped value.

        Raises:
            FormatError: The result holds an error.
        """

        if self.error is not None:
            raise self.error.to_exception(line_number)
        return self.value
