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

r"""Ready-made data block consumers.

Examples:
    >>> from ihexfeed.consumers import MemoryConsumer
    >>> from ihexfeed.decoder import IhexDecoder
    >>> consumer = MemoryConsumer()
    >>> decoder = IhexDecoder(consumer)
    >>> decoder.feed(b':0300300002337A1E\r\n:00000001FF\r\n')
    True
    >>> [list(block) for block in consumer.memory.to_blocks()]
    [[48, b'\x023z']]
"""

from typing import List
from typing import Optional
from typing import Tuple

from bytesparse import Memory
from bytesparse.base import MutableMemory

from .decoder import BaseConsumer


class MemoryConsumer(BaseConsumer):
    r"""Collects data blocks into a sparse memory image.

    Args:
        memory (:class:`bytesparse.Memory`):
            Target memory; a new one by default.

        overlap (bool):
            Accepts blocks overwriting previously written data.
    """

    def __init__(
        self,
        memory: Optional[MutableMemory] = None,
        overlap: bool = True,
    ):

        if memory is None:
            memory = Memory()

        self.memory: MutableMemory = memory
        self.overlap: bool = overlap

    def __call__(self, address: int, data: bytes, size: int) -> bool:

        memory = self.memory
        if not self.overlap:
            if any(memory.peek(address + offset) is not None for offset in range(size)):
                return False

        memory.write(address, data[:size])
        return True


class BlockListConsumer(BaseConsumer):
    r"""Records data blocks as ``(address, data)`` couples."""

    def __init__(self):

        self.blocks: List[Tuple[int, bytes]] = []

    def __call__(self, address: int, data: bytes, size: int) -> bool:

        self.blocks.append((address, bytes(data[:size])))
        return True
