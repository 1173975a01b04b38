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

r"""Generic utility functions."""

import binascii
import re
from typing import Optional
from typing import Union

from .base import AnyBytes

HEX_REGEX = re.compile(b'[0-9A-Fa-f]*')
r"""Strict hexadecimal digits, no signs nor prefixes nor whitespace."""


def hexlify(
    bytestr: AnyBytes,
    upper: bool = True,
) -> bytes:
    r"""Converts raw bytes into a hexadecimal byte string.

    Args:
        bytestr (bytes):
            Source byte string.

        upper (bool):
            Uppercase hexadecimal string.

    Returns:
        bytes: Hexadecimal byte string.

    Examples:
        >>> from ihexload.utils import hexlify
        >>> hexlify(b'\xAA\xBB\xCC')
        b'AABBCC'
        >>> hexlify(b'\xAA\xBB\xCC', upper=False)
        b'aabbcc'
    """

    hexstr = binascii.hexlify(bytestr)
    if upper:
        hexstr = hexstr.upper()
    return hexstr


def is_hex(hexstr: AnyBytes) -> bool:
    r"""Tells whether a byte string holds only hexadecimal digits.

    Examples:
        >>> from ihexload.utils import is_hex
        >>> is_hex(b'0123abcDEF')
        True
        >>> is_hex(b'+1')
        False
        >>> is_hex(b'0x12')
        False
    """

    return HEX_REGEX.fullmatch(hexstr) is not None


def parse_hex(hexstr: AnyBytes) -> Optional[int]:
    r"""Parses a strict hexadecimal field.

    Args:
        hexstr (bytes):
            Hexadecimal digits, big-endian, even length.

    Returns:
        int: Parsed value, or ``None`` if `hexstr` is not strictly
        hexadecimal (or empty).

    Examples:
        >>> from ihexload.utils import parse_hex
        >>> parse_hex(b'ABCD')
        43981
        >>> parse_hex(b'AB D') is None
        True
    """

    if not hexstr or len(hexstr) % 2 or not is_hex(hexstr):
        return None
    return int.from_bytes(unhexlify(hexstr), byteorder='big')


def unhexlify(
    hexstr: Union[bytes, bytearray, memoryview],
) -> bytes:
    r"""Converts a hexadecimal byte string into raw bytes.

    Args:
        hexstr (bytes):
            Source hexadecimal byte string.

    Returns:
        bytes: Raw byte string.

    Raises:
        ValueError: Invalid hexadecimal string.

    Examples:
        >>> from ihexload.utils import unhexlify
        >>> unhexlify(b'AABBCC')
        b'\xaa\xbb\xcc'
    """

    bytestr = binascii.unhexlify(hexstr)
    return bytestr
