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

r"""CRC-32 of decoded images."""

import binascii
from typing import Optional
from typing import Union

from bytesparse.base import ImmutableMemory


def crc32_calculate(
    data: Union[bytes, bytearray, memoryview],
    crc: int = 0,
) -> int:
    r"""Computes the CRC-32 of a buffer.

    Standard IEEE 802.3 polynomial, as per :func:`binascii.crc32`.

    Args:
        data (bytes):
            Input buffer.

        crc (int):
            CRC of the preceding buffers, to chain calls.

    Returns:
        int: Unsigned 32-bit CRC.

    Examples:
        >>> hex(crc32_calculate(b'123456789'))
        '0xcbf43926'
        >>> hex(crc32_calculate(b'56789', crc32_calculate(b'1234')))
        '0xcbf43926'
    """

    return binascii.crc32(data, crc) & 0xFFFFFFFF


def memory_crc32(
    memory: ImmutableMemory,
    start: Optional[int] = None,
    endex: Optional[int] = None,
    fill: int = 0xFF,
) -> int:
    r"""Computes the CRC-32 of a memory image.

    Memory holes within the range are flooded with `fill`.

    Args:
        memory (:class:`bytesparse.base.ImmutableMemory`):
            Memory image.

        start (int):
            Inclusive start address; memory start by default.

        endex (int):
            Exclusive end address; memory end by default.

        fill (int):
            Byte value flooding memory holes.

    Returns:
        int: Unsigned 32-bit CRC.

    Examples:
        >>> from bytesparse import Memory
        >>> memory = Memory.from_blocks([[0, b'1234'], [5, b'6789']])
        >>> hex(memory_crc32(memory, fill=ord('5')))
        '0xcbf43926'
    """

    return crc32_calculate(memory_image(memory, start=start, endex=endex, fill=fill))


def memory_image(
    memory: ImmutableMemory,
    start: Optional[int] = None,
    endex: Optional[int] = None,
    fill: int = 0xFF,
) -> bytes:
    r"""Flattens a memory image.

    Args:
        memory (:class:`bytesparse.base.ImmutableMemory`):
            Memory image.

        start (int):
            Inclusive start address; memory start by default.

        endex (int):
            Exclusive end address; memory end by default.

        fill (int):
            Byte value flooding memory holes.

    Returns:
        bytes: Contiguous image.
    """

    if not 0 <= fill <= 0xFF:
        raise ValueError('invalid fill byte')

    extracted = memory.extract(start=start, endex=endex, pattern=bytes([fill]))
    return extracted.to_bytes()
