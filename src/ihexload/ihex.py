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

r"""Intel HEX records.

See Also:
    `<https://en.wikipedia.org/wiki/Intel_HEX>`_
"""

import enum
from typing import Any
from typing import Optional
from typing import Tuple
from typing import Type
from typing import Union

from .base import AnyBytes
from .base import EllipsisType
from .base import ErrorKind
from .base import Result
from .utils import hexlify
from .utils import is_hex
from .utils import parse_hex
from .utils import unhexlify


class IhexTag(enum.IntEnum):
    r"""Intel HEX tag."""

    DATA = 0
    r"""Binary data."""

    END_OF_FILE = 1
    r"""End Of File."""

    EXTENDED_SEGMENT_ADDRESS = 2
    r"""Extended Segment Address."""

    START_SEGMENT_ADDRESS = 3
    r"""Start Segment Address."""

    EXTENDED_LINEAR_ADDRESS = 4
    r"""Extended Linear Address."""

    START_LINEAR_ADDRESS = 5
    r"""Start Linear Address."""

    def is_data(self) -> bool:
        r"""Tells whether this is a Data record tag.

        Examples:
            >>> from ihexload.ihex import IhexTag
            >>> IhexTag.DATA.is_data()
            True
            >>> IhexTag.END_OF_FILE.is_data()
            False
        """

        return self == IhexTag.DATA

    def is_eof(self) -> bool:
        r"""Tells whether this is an End Of File record tag.

        Examples:
            >>> from ihexload.ihex import IhexTag
            >>> IhexTag.END_OF_FILE.is_eof()
            True
            >>> IhexTag.DATA.is_eof()
            False
        """

        return self == IhexTag.END_OF_FILE

    def is_extension(self) -> bool:
        r"""Tells whether this is an Extended Address record tag.

        This method returns true if this record tag is used for
        *address extension* records.

        Examples:
            >>> from ihexload.ihex import IhexTag
            >>> IhexTag.EXTENDED_LINEAR_ADDRESS.is_extension()
            True
            >>> IhexTag.EXTENDED_SEGMENT_ADDRESS.is_extension()
            True
            >>> IhexTag.DATA.is_extension()
            False
        """

        return ((self == IhexTag.EXTENDED_SEGMENT_ADDRESS) or
                (self == IhexTag.EXTENDED_LINEAR_ADDRESS))

    def is_file_termination(self) -> bool:
        r"""Tells whether this record tag terminates a record file.

        Examples:
            >>> from ihexload.ihex import IhexTag
            >>> IhexTag.END_OF_FILE.is_file_termination()
            True
            >>> IhexTag.DATA.is_file_termination()
            False
        """

        return self.is_eof()

    def is_start(self) -> bool:
        r"""Tells whether this is a Start Address record tag.

        Start address records carry the program entry point, not memory
        contents.

        Examples:
            >>> from ihexload.ihex import IhexTag
            >>> IhexTag.START_LINEAR_ADDRESS.is_start()
            True
            >>> IhexTag.START_SEGMENT_ADDRESS.is_start()
            True
            >>> IhexTag.DATA.is_start()
            False
        """

        return ((self == IhexTag.START_SEGMENT_ADDRESS) or
                (self == IhexTag.START_LINEAR_ADDRESS))


class IhexRecord:
    r"""Intel HEX record object.

    A record is the decoded form of a single line::

        :BBAAAATT<data...>CC

    Attributes:
        tag (:class:`IhexTag`):
            Record nature.

        address (int):
            16-bit address, as read from the line (no extension applied).

        data (bytes):
            Payload bytes.

        count (int):
            Declared byte count.

        checksum (int):
            Declared checksum.

        coords (int couple):
            Coordinates of the parsed record, i.e. ``(line_number, 0)``.
            Debug only.

    Args:
        tag (:class:`IhexTag`):
            See :attr:`tag` attribute.

        address (int):
            See :attr:`address` attribute.

        data (bytes):
            See :attr:`data` attribute.

        count (int):
            See :attr:`count` attribute.
            ``Ellipsis`` initializes :attr:`count` via :meth:`compute_count`.

        checksum (int):
            See :attr:`checksum` attribute.
            ``Ellipsis`` initializes :attr:`checksum` via
            :meth:`compute_checksum`.

        coords (int couple):
            See :attr:`coords` attribute.
    """

    Tag: Type[IhexTag] = IhexTag

    START_CODE: bytes = b':'
    START_CODE_INDEX: int = 0
    BYTE_COUNT_INDEX: int = 1
    ADDRESS_INDEX: int = 3
    RECORD_TYPE_INDEX: int = 7
    DATA_INDEX: int = 9

    BYTE_COUNT_SIZE: int = 2
    ADDRESS_SIZE: int = 4
    RECORD_TYPE_SIZE: int = 2
    CHECKSUM_SIZE: int = 2

    EQUALITY_KEYS: Tuple[str, ...] = (
        'address',
        'checksum',
        'count',
        'data',
        'tag',
    )

    def __init__(
        self,
        tag: IhexTag,
        address: int = 0,
        data: AnyBytes = b'',
        count: Optional[Union[int, EllipsisType]] = Ellipsis,
        checksum: Optional[Union[int, EllipsisType]] = Ellipsis,
        coords: Tuple[int, int] = (-1, -1),
    ):

        self.tag: IhexTag = self.Tag(tag)
        self.address: int = address.__index__()
        self.data: bytes = bytes(data)
        self.coords: Tuple[int, int] = coords

        if count is Ellipsis:
            count = self.compute_count()
        self.count: Optional[int] = count

        if checksum is Ellipsis:
            checksum = self.compute_checksum()
        self.checksum: Optional[int] = checksum

    def __eq__(self, other: Any) -> bool:

        if not isinstance(other, IhexRecord):
            return NotImplemented

        return all(getattr(self, key) == getattr(other, key)
                   for key in self.EQUALITY_KEYS)

    def __repr__(self) -> str:

        return (f'<{type(self).__name__} tag={self.tag.name} '
                f'address=0x{self.address:04X} data={self.data!r} '
                f'count={self.count} checksum={self.checksum}>')

    def __str__(self) -> str:

        text = b':%02X%04X%02X%s%02X' % (
            (self.count or 0) & 0xFF,
            self.address & 0xFFFF,
            self.tag & 0xFF,
            hexlify(self.data),
            (self.checksum or 0) & 0xFF,
        )
        return text.decode()

    def compute_checksum(self) -> int:
        r"""Computes the checksum.

        It is the two's complement of the 8-bit sum of the byte count, both
        address bytes, the tag, and every data byte.

        Returns:
            int: Checksum byte.

        Raises:
            ValueError: :attr:`count` is ``None``.

        Examples:
            >>> from ihexload.ihex import IhexRecord
            >>> record = IhexRecord.parse(b':0300300002337A1E')
            >>> record.compute_checksum()
            30
        """

        if self.count is None:
            raise ValueError('missing count')

        count = self.count & 0xFF
        address = self.address & 0xFFFF
        sum_address = (address >> 8) + (address & 0xFF)
        sum_data = sum(self.data)
        tag = self.tag & 0xFF
        checksum = (count + sum_address + tag + sum_data)
        checksum = (0x100 - (checksum & 0xFF)) & 0xFF
        return checksum

    def compute_count(self) -> int:

        return len(self.data)

    def data_to_int(self, byteorder: str = 'big') -> int:
        r"""Interprets the data field as an unsigned integer.

        Examples:
            >>> from ihexload.ihex import IhexRecord
            >>> record = IhexRecord.parse(b':02000004ABCD82')
            >>> hex(record.data_to_int())
            '0xabcd'
        """

        return int.from_bytes(self.data, byteorder=byteorder, signed=False)

    @classmethod
    def decode(cls, line: AnyBytes) -> Result:
        r"""Decodes a line into a record.

        This is the non-raising decoder: any problem is returned as a
        :class:`ihexload.base.RecordError` within the result.

        Checks are performed in this order: minimum length, start code,
        fixed field syntax, overall length, record type, data syntax,
        checksum.

        Args:
            line (bytes):
                A single line, trailing whitespace already stripped.

        Returns:
            :class:`ihexload.base.Result`: Either the decoded record, or the
            first error found.

        Examples:
            >>> from ihexload.ihex import IhexRecord
            >>> result = IhexRecord.decode(b':00000001FF')
            >>> result.value.tag.name
            'END_OF_FILE'
            >>> result = IhexRecord.decode(b':00000001FE')
            >>> result.error.message
            'invalid checksum (expected: FFh, reported: FEh)'
        """

        line = bytes(line)
        data_index = cls.DATA_INDEX
        checksum_size = cls.CHECKSUM_SIZE

        if len(line) < data_index + checksum_size:
            return Result.failure(ErrorKind.TRUNCATED, 'truncated record')

        start_index = cls.START_CODE_INDEX
        start_code = line[start_index:(start_index + len(cls.START_CODE))]
        if start_code != cls.START_CODE:
            char = line[start_index]
            return Result.failure(ErrorKind.START_CODE,
                                  f'invalid start code {chr(char)!r} ({char:02X}h)')

        index = cls.BYTE_COUNT_INDEX
        count = parse_hex(line[index:(index + cls.BYTE_COUNT_SIZE)])
        index = cls.ADDRESS_INDEX
        address = parse_hex(line[index:(index + cls.ADDRESS_SIZE)])
        index = cls.RECORD_TYPE_INDEX
        tag_code = parse_hex(line[index:(index + cls.RECORD_TYPE_SIZE)])

        if count is None or address is None or tag_code is None:
            return Result.failure(ErrorKind.HEX_VALUE, 'invalid hexadecimal value')

        checksum_index = data_index + (count * 2)
        if len(line) != checksum_index + checksum_size:
            return Result.failure(ErrorKind.LENGTH, 'invalid record length')

        try:
            tag = cls.Tag(tag_code)
        except ValueError:
            return Result.failure(ErrorKind.RECORD_TYPE,
                                  f"unsupported record type '{tag_code:02X}h'")

        datastr = line[data_index:checksum_index]
        if not is_hex(datastr):
            return Result.failure(ErrorKind.HEX_VALUE, 'invalid hexadecimal value')
        data = unhexlify(datastr)

        checksum = parse_hex(line[checksum_index:])
        if checksum is None:
            return Result.failure(ErrorKind.HEX_VALUE, 'invalid hexadecimal value')

        record = cls(tag, address=address, data=data, count=count, checksum=checksum)
        expected = record.compute_checksum()
        if checksum != expected:
            return Result.failure(ErrorKind.CHECKSUM,
                                  f'invalid checksum (expected: {expected:02X}h, '
                                  f'reported: {checksum:02X}h)')

        return Result.success(record)

    def extension(self) -> Result:
        r"""Computes the address extension carried by the record.

        Only meaningful for *Extended Linear Address* and *Extended Segment
        Address* records, which must carry exactly 2 data bytes.

        Returns:
            :class:`ihexload.base.Result`: The extension value to add to the
            address of the following data records, or an error.

        Raises:
            ValueError: Not an address extension record.

        Examples:
            >>> from ihexload.ihex import IhexRecord
            >>> hex(IhexRecord.parse(b':02000004ABCD82').extension().value)
            '0xabcd0000'
            >>> hex(IhexRecord.parse(b':020000021234B6').extension().value)
            '0x12340'
        """

        Tag = self.Tag
        tag = self.tag

        if tag == Tag.EXTENDED_LINEAR_ADDRESS:
            if len(self.data) != 2:
                return Result.failure(ErrorKind.EXTENSION_LENGTH,
                                      "invalid data length for "
                                      "'Extended Linear Address' record")
            return Result.success(self.data_to_int() << 16)

        elif tag == Tag.EXTENDED_SEGMENT_ADDRESS:
            if len(self.data) != 2:
                return Result.failure(ErrorKind.EXTENSION_LENGTH,
                                      "invalid data length for "
                                      "'Extended Segment Address' record")
            return Result.success(self.data_to_int() << 4)

        else:
            raise ValueError('not an extension record')

    @classmethod
    def parse(cls, line: AnyBytes) -> 'IhexRecord':
        r"""Parses a line into a record.

        Trailing whitespace is stripped before decoding.

        Args:
            line (bytes):
                A single line.

        Returns:
            :class:`IhexRecord`: Decoded record.

        Raises:
            :class:`ihexload.base.FormatError`: Malformed line, without any
            line number attached.

        Examples:
            >>> from ihexload.ihex import IhexRecord
            >>> record = IhexRecord.parse(b':0300300002337A1E\r\n')
            >>> record.data
            b'\x023z'
            >>> IhexRecord.parse(b'!00000001FF')
            Traceback (most recent call last):
                ...
            ihexload.base.FormatError: invalid start code '!' (21h)
        """

        return cls.decode(bytes(line).rstrip()).unwrap()
