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

r"""Sparse firmware image.

A firmware image is a set of *blocks*, each being a contiguous chunk of
bytes allocated at some absolute address.

Byte contents are held by a :class:`bytesparse.Memory` object, while the
image keeps track of how such contents are partitioned into blocks.
Writes can either be *merged* with adjacent blocks (the default), or kept as
separate blocks even when touching their neighbours:

+---+---+---+---+---+---+---+---+---+---+
| 0 | 1 | 2 | 3 | 4 | 5 | 6 | 7 | 8 | 9 |
+===+===+===+===+===+===+===+===+===+===+
|[A | B]|[C | D]|   |   |[x | y]|   |   |
+---+---+---+---+---+---+---+---+---+---+
|[A | B | C | D]|   |   |[x | y]|   |   |
+---+---+---+---+---+---+---+---+---+---+

Overlapping writes overwrite the older contents.
"""

import logging
from typing import Any
from typing import Iterator
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Tuple

from bytesparse import Memory

from .base import AnyBytes

_logger = logging.getLogger(__name__)

Span = List[int]  # [start, endex]


class FirmwareBlock(NamedTuple):
    r"""Contiguous chunk of firmware bytes."""

    start: int
    r"""Inclusive start address."""

    data: bytes
    r"""Block contents."""

    @property
    def endex(self) -> int:
        r"""int: Exclusive end address."""

        return self.start + len(self.data)


def _locate_start(spans: List[Span], address: int) -> int:
    # First span not entirely before address
    left = 0
    right = len(spans)

    while left < right:
        center = (left + right) >> 1
        if spans[center][1] <= address:
            left = center + 1
        else:
            right = center
    return left


def _locate_endex(spans: List[Span], address: int) -> int:
    # First span entirely after address
    left = 0
    right = len(spans)

    while left < right:
        center = (left + right) >> 1
        if spans[center][0] < address:
            left = center + 1
        else:
            right = center
    return left


class Firmware:
    r"""Firmware image.

    Examples:
        >>> from ihexload.firmware import Firmware
        >>> firmware = Firmware()
        >>> _ = firmware.write(0, b'AB').write(2, b'CD').write(6, b'xy')
        >>> firmware.to_blocks()
        [[0, b'ABCD'], [6, b'xy']]

        >>> firmware = Firmware()
        >>> _ = firmware.write(0, b'AB', no_block_merging=True)
        >>> _ = firmware.write(2, b'CD', no_block_merging=True)
        >>> firmware.to_blocks()
        [[0, b'AB'], [2, b'CD']]
    """

    def __init__(self):

        self._memory: Memory = Memory()
        self._spans: List[Span] = []

    def __bool__(self) -> bool:

        return bool(self._spans)

    def __eq__(self, other: Any) -> bool:

        if not isinstance(other, Firmware):
            return NotImplemented

        return self.to_blocks() == other.to_blocks()

    def __iter__(self) -> Iterator[FirmwareBlock]:

        for start, endex in self._spans:
            yield FirmwareBlock(start, self._read_span(start, endex))

    def __len__(self) -> int:
        r"""Number of blocks."""

        return len(self._spans)

    def __repr__(self) -> str:

        return (f'<{type(self).__name__} blocks={len(self._spans)} '
                f'span=0x{self.start:08X}..0x{self.endex:08X}>')

    def _read_span(self, start: int, endex: int) -> bytes:

        return self._memory.extract(start=start, endex=endex).to_bytes()

    @property
    def blocks(self) -> List[FirmwareBlock]:
        r"""list of :class:`FirmwareBlock`: Blocks, sorted by address."""

        return list(self)

    @property
    def content_size(self) -> int:
        r"""int: Number of stored bytes, holes excluded."""

        return sum(endex - start for start, endex in self._spans)

    @property
    def endex(self) -> int:
        r"""int: Exclusive end address of the last block, 0 if empty."""

        return self._spans[-1][1] if self._spans else 0

    @property
    def memory(self) -> Memory:
        r""":class:`bytesparse.Memory`: Backing byte storage.

        Adjacent blocks are not distinguishable within the memory object
        itself; please refer to :attr:`blocks` for the block partitioning.
        """

        return self._memory

    def peek(self, address: int) -> Optional[int]:
        r"""Reads a single byte.

        Args:
            address (int):
                Absolute address.

        Returns:
            int: Byte value, or ``None`` for a hole.
        """

        return self._memory.peek(address)

    def read(self, address: int, size: int) -> bytes:
        r"""Reads contiguous data.

        The range may cross block boundaries, as long as there is no hole
        within it.

        Args:
            address (int):
                Absolute start address.

            size (int):
                Number of bytes to read.

        Returns:
            bytes: Read data.

        Raises:
            ValueError: Holes within the range.

        Examples:
            >>> from ihexload.firmware import Firmware
            >>> firmware = Firmware().write(0x1000, b'abc').write(0x1003, b'xyz')
            >>> firmware.read(0x1002, 3)
            b'cxy'
        """

        if size <= 0:
            return b''

        spans = self._spans
        endex = address + size
        index = _locate_start(spans, address)
        cursor = address

        while cursor < endex:
            if index >= len(spans) or cursor < spans[index][0]:
                raise ValueError('non-contiguous data within range')
            cursor = spans[index][1]
            index += 1

        return self._read_span(address, endex)

    @property
    def span(self) -> Tuple[int, int]:
        r"""int couple: :attr:`start` and :attr:`endex`."""

        return self.start, self.endex

    @property
    def start(self) -> int:
        r"""int: Inclusive start address of the first block, 0 if empty."""

        return self._spans[0][0] if self._spans else 0

    def to_blocks(self) -> List[List[Any]]:
        r"""Exports blocks as a list of ``[start, bytes]`` pairs.

        Each pair is a mutable :class:`list`, unlike :attr:`blocks`.

        Returns:
            list: Blocks, sorted by address.
        """

        return [[block.start, block.data] for block in self]

    def write(
        self,
        address: int,
        data: AnyBytes,
        no_block_merging: bool = False,
    ) -> 'Firmware':
        r"""Writes data.

        Any previous contents within the written range are overwritten.

        Args:
            address (int):
                Absolute start address.

            data (bytes):
                Data to write; empty data is ignored.

            no_block_merging (bool):
                If false, the written block is merged with any touching
                blocks. If true, it is kept as a separate block.

        Returns:
            :class:`Firmware`: *self*.

        Raises:
            ValueError: Negative address.
        """

        start = address.__index__()
        if start < 0:
            raise ValueError('address overflow')

        size = len(data)
        if not size:
            return self
        endex = start + size

        spans = self._spans
        index_start = _locate_start(spans, start)
        index_endex = _locate_endex(spans, endex)
        replacement = []

        if index_start < index_endex:
            _logger.debug('overwriting 0x%X..0x%X', start, endex)
            first_start = spans[index_start][0]
            last_endex = spans[index_endex - 1][1]

            if first_start < start:
                replacement.append([first_start, start])
            replacement.append([start, endex])
            if endex < last_endex:
                replacement.append([endex, last_endex])
        else:
            replacement.append([start, endex])

        spans[index_start:index_endex] = replacement
        index = _locate_endex(spans, start)

        if not no_block_merging:
            following = index + 1
            if following < len(spans) and spans[following][0] == endex:
                spans[index][1] = spans[following][1]
                del spans[following]

            if index and spans[index - 1][1] == start:
                spans[index - 1][1] = spans[index][1]
                del spans[index]

        self._memory.write(start, data)
        return self
