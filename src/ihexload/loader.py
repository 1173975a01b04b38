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

r"""Intel HEX file loader.

Lines are read one at a time and decoded by :meth:`IhexRecord.decode`;
the resulting records drive a :class:`DecodeState`, which keeps the address
extension bookkeeping and writes data into a :class:`Firmware` image.

Examples:
    >>> from ihexload import parse
    >>> buffer = b'''
    ... :02000004ABCD82
    ... :020010000102EB
    ... :00000001FF
    ... '''
    >>> parse(buffer).to_blocks()
    [[2882338832, b'\x01\x02']]
"""

import asyncio
import enum
import io
import logging
import sys
from typing import IO
from typing import Iterator
from typing import Optional
from typing import Union

from .base import AnyBytes
from .base import AnyPath
from .base import ErrorKind
from .base import Result
from .firmware import Firmware
from .ihex import IhexRecord

_logger = logging.getLogger(__name__)

ADDRESS_MASK: int = 0xFFFFFFFF
r"""Absolute addresses wrap around 32 bits."""

UTF8_BOM: bytes = b'\xEF\xBB\xBF'
r"""Byte order mark skipped at the beginning of a stream."""


class DecodePhase(enum.Enum):
    r"""Decoder state machine phase."""

    SCANNING = 'scanning'
    r"""Records are being processed."""

    TERMINATED = 'terminated'
    r"""End Of File record found; only blank lines may follow."""


class DecodeState:
    r"""Decoding session state.

    Owned by a single decoding session, it is fed one line at a time.

    Attributes:
        extended_linear_address (int):
            Upper 16 bits of the absolute address, as set by the last
            *Extended Linear Address* record.

        extended_segment_address (int):
            Segment offset (bits 4 to 19), as set by the last
            *Extended Segment Address* record.

        eof_seen (bool):
            An *End Of File* record was processed.

        line_number (int):
            1-based number of the last line fed.

    Args:
        firmware (:class:`Firmware`):
            Target firmware image; a new one if ``None``.

        no_block_merging (bool):
            Forwarded to :meth:`Firmware.write`.
    """

    Record = IhexRecord

    def __init__(
        self,
        firmware: Optional[Firmware] = None,
        no_block_merging: bool = False,
    ):

        if firmware is None:
            firmware = Firmware()

        self.firmware: Firmware = firmware
        self.no_block_merging: bool = no_block_merging
        self.extended_linear_address: int = 0
        self.extended_segment_address: int = 0
        self.eof_seen: bool = False
        self.line_number: int = 0

    @property
    def phase(self) -> DecodePhase:
        r""":class:`DecodePhase`: Current phase."""

        return DecodePhase.TERMINATED if self.eof_seen else DecodePhase.SCANNING

    def apply(self, record: IhexRecord) -> Result:
        r"""Applies a decoded record.

        Args:
            record (:class:`IhexRecord`):
                Record to apply.

        Returns:
            :class:`ihexload.base.Result`: Empty on success, or the error.
        """

        Tag = self.Record.Tag
        tag = record.tag

        if tag.is_data():
            address = (record.address +
                       self.extended_linear_address +
                       self.extended_segment_address) & ADDRESS_MASK
            self.firmware.write(address, record.data, self.no_block_merging)

        elif tag.is_file_termination():
            self.eof_seen = True
            _logger.debug('line %d: end of file', self.line_number)

        elif tag.is_extension():
            result = record.extension()
            if not result.ok:
                return result

            if tag == Tag.EXTENDED_LINEAR_ADDRESS:
                self.extended_linear_address = result.value
                _logger.debug('line %d: linear extension 0x%08X',
                              self.line_number, result.value)
            else:
                self.extended_segment_address = result.value
                _logger.debug('line %d: segment extension 0x%08X',
                              self.line_number, result.value)

        elif tag.is_start():
            _logger.debug('line %d: start address record ignored', self.line_number)

        return Result.success()

    def feed(self, line: AnyBytes) -> Result:
        r"""Processes the next line.

        Trailing whitespace is stripped; blank lines are just counted.

        Args:
            line (bytes):
                Raw line, as read from the stream.

        Returns:
            :class:`ihexload.base.Result`: Empty on success, or the error
            (without line number).
        """

        self.line_number += 1
        line = bytes(line).rstrip()

        if not line:
            return Result.success()

        if self.eof_seen:
            return Result.failure(ErrorKind.AFTER_EOF, 'record found after EOF record')

        result = self.Record.decode(line)
        if not result.ok:
            return result

        record = result.value
        record.coords = (self.line_number, 0)
        return self.apply(record)


def iter_lines(stream: IO) -> Iterator[bytes]:
    r"""Iterates the lines of a binary stream.

    Lines end with ``\n``, ``\r\n``, or a lone ``\r``.
    A UTF-8 byte order mark at the beginning of the stream is skipped.

    Args:
        stream (bytes IO):
            Binary stream, iterated by ``\n`` terminated chunks.

    Yields:
        bytes: The next line, line terminator excluded.

    Examples:
        >>> import io
        >>> from ihexload.loader import iter_lines
        >>> list(iter_lines(io.BytesIO(b'\xEF\xBB\xBFa\rb\r\nc\n\n')))
        [b'a', b'b', b'c', b'']
    """

    first = True
    for chunk in stream:
        if first:
            first = False
            if chunk.startswith(UTF8_BOM):
                chunk = chunk[len(UTF8_BOM):]

        # An empty line still counts
        yield from (chunk.splitlines() or [b''])


def parse(
    stream: Union[AnyBytes, IO],
    no_block_merging: bool = False,
) -> Firmware:
    r"""Parses records from a byte stream.

    Args:
        stream (bytes IO or buffer):
            Binary stream or byte buffer to parse records from.
            The stream is iterated by :func:`iter_lines`, and left open.

        no_block_merging (bool):
            Keep each data record as a separate block, even when adjacent to
            other blocks.

    Returns:
        :class:`Firmware`: Loaded firmware image.

    Raises:
        :class:`ihexload.base.FormatError`: The first decoding error, with
        its line number.

    See Also:
        :meth:`IhexRecord.decode`
        :meth:`DecodeState.feed`
        :func:`iter_lines`
    """

    if isinstance(stream, (bytes, bytearray, memoryview)):
        stream = io.BytesIO(stream)

    state = DecodeState(no_block_merging=no_block_merging)
    _logger.debug('decoding started (no_block_merging=%s)', no_block_merging)

    for line in iter_lines(stream):
        result = state.feed(line)
        if not result.ok:
            _logger.debug('line %d: %s', state.line_number, result.error.message)
            raise result.error.to_exception(state.line_number)

    if not state.eof_seen:
        _logger.debug('stream ended without End Of File record')

    firmware = state.firmware
    _logger.debug('decoded %d lines into %d blocks',
                  state.line_number, len(firmware))
    return firmware


def load(
    in_path_or_stream: Optional[Union[AnyPath, IO]],
    no_block_merging: bool = False,
) -> Firmware:
    r"""Loads a firmware image from the filesystem.

    Args:
        in_path_or_stream (str or bytes IO):
            Path of the file within the filesystem, or binary input stream.
            If ``None``, ``sys.stdin.buffer`` is used.

        no_block_merging (bool):
            Forwarded to :func:`parse`.

    Returns:
        :class:`Firmware`: Loaded firmware image.

    Raises:
        :class:`ihexload.base.FormatError`: Decoding error.

    See Also:
        :func:`parse`
        :func:`load_async`
    """

    if in_path_or_stream is None:
        in_path_or_stream = sys.stdin.buffer

    if isinstance(in_path_or_stream, io.IOBase):
        stream = in_path_or_stream
        return parse(stream, no_block_merging=no_block_merging)
    else:
        if isinstance(in_path_or_stream, (bytes, bytearray)):
            path = bytes(in_path_or_stream)
        else:
            path = in_path_or_stream
        with open(path, 'rb') as stream:
            return parse(stream, no_block_merging=no_block_merging)


async def load_async(
    in_path_or_stream: Optional[Union[AnyPath, IO]],
    no_block_merging: bool = False,
) -> Firmware:
    r"""Loads a firmware image within a worker thread.

    This is just a coroutine wrapper around :func:`load`.
    Upon cancellation, any partially loaded image is dropped.

    See Also:
        :func:`load`
    """

    return await asyncio.to_thread(load, in_path_or_stream,
                                   no_block_merging=no_block_merging)
