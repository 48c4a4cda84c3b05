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

r"""Streaming Intel HEX decoder.

The decoder is a finite-state machine fed one byte at a time.
Every record is validated against its declared byte count and checksum,
then either updates the addressing state (extended segment / linear address
records) or delivers its payload to the registered consumer (data records).

See Also:
    `<https://en.wikipedia.org/wiki/Intel_HEX>`_

Examples:
    >>> from ihexfeed.decoder import IhexDecoder
    >>> blocks = []
    >>> decoder = IhexDecoder(lambda address, data, size: blocks.append((address, data)) or True)
    >>> decoder.feed(b':020000040010EA\r\n:03002000010203D7\r\n:00000001FF\r\n')
    True
    >>> blocks
    [(1048608, b'\x01\x02\x03')]
"""

import abc
import enum
import logging
from typing import IO
from typing import Callable
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Union

from deprecated import deprecated

from .utils import hexlify

_logger = logging.getLogger(__name__)

AnyBytes = Union[bytes, bytearray, memoryview]

ConsumerType = Callable[[int, bytes, int], bool]
r"""Data block consumer signature: ``(address, data, size) -> accepted``."""

HEX_NIBBLES: Mapping[int, int] = {
    **{c: c - 0x30 for c in b'0123456789'},
    **{c: c - 0x41 + 10 for c in b'ABCDEF'},
    **{c: c - 0x61 + 10 for c in b'abcdef'},
}
r"""Hexadecimal digit character code to nibble value."""

START_CODE: int = 0x3A  # ':'
TERMINATOR: int = 0x00
LINE_FEED: int = 0x0A
CARRIAGE_RETURN: int = 0x0D

DEFAULT_CHUNK_SIZE: int = 4096


class IhexTag(enum.IntEnum):
    r"""Intel HEX record type."""

    DATA = 0
    r"""Binary data."""

    END_OF_FILE = 1
    r"""End of file."""

    EXTENDED_SEGMENT_ADDRESS = 2
    r"""Extended segment address."""

    START_SEGMENT_ADDRESS = 3
    r"""Start segment address."""

    EXTENDED_LINEAR_ADDRESS = 4
    r"""Extended linear address."""

    START_LINEAR_ADDRESS = 5
    r"""Start linear address."""

    def is_data(self) -> bool:

        return self == 0

    def is_eof(self) -> bool:

        return self == 1

    def is_start(self) -> bool:

        return self == 3 or self == 5

    def is_extension(self) -> bool:

        return self == 2 or self == 4


RECORD_TAGS: Mapping[int, IhexTag] = {tag.value: tag for tag in IhexTag}
r"""Record type code to tag; codes accepted but without a tag are inert."""


class DecoderState(enum.IntEnum):
    r"""Position within the record grammar."""

    START = 0
    r"""Awaiting the record start code, or a line terminator."""

    BYTE_COUNT = 1
    r"""Payload length field (2 nibbles)."""

    ADDRESS = 2
    r"""Address field (4 nibbles)."""

    RECORD_TYPE = 3
    r"""Record type field (2 nibbles)."""

    DATA = 4
    r"""Payload field (2 nibbles per declared byte)."""

    CHECKSUM = 5
    r"""Checksum field (2 nibbles)."""


FIELD_NIBBLES: Mapping[DecoderState, int] = {
    DecoderState.BYTE_COUNT: 2,
    DecoderState.ADDRESS: 4,
    DecoderState.RECORD_TYPE: 2,
    DecoderState.CHECKSUM: 2,
}
r"""Width of the fixed-size fields, in nibbles."""


# ============================================================================

class DecodeError(ValueError):
    r"""Record decoding failure.

    Args:
        message (str):
            Failure description.

        offset (int):
            Stream offset of the offending byte, since the last reset.

        line (int):
            Line number of the offending byte, 1-based.
    """

    def __init__(self, message: str, offset: int = 0, line: int = 1):

        super().__init__(message)
        self.offset: int = offset
        self.line: int = line


class InvalidStartCodeError(DecodeError):
    r"""Unexpected byte where a record start code was expected."""


class InvalidHexError(DecodeError):
    r"""Malformed hexadecimal digit."""


class InvalidRecordTypeError(DecodeError):
    r"""Unsupported or structurally invalid record type."""


class ByteCountOverflowError(DecodeError):
    r"""Declared byte count exceeds the payload capacity."""


class PayloadSizeError(DecodeError):
    r"""Declared byte count does not match the payload length."""


class ChecksumError(DecodeError):
    r"""Record checksum is not zero."""


class ConsumerRejectedError(DecodeError):
    r"""The consumer rejected a data block."""


# ============================================================================

class BaseConsumer(abc.ABC):
    r"""Data block consumer.

    Any callable with the :data:`ConsumerType` signature can be registered
    into a decoder; this class is a convenience base for stateful consumers.
    """

    @abc.abstractmethod
    def __call__(self, address: int, data: bytes, size: int) -> bool:
        r"""Consumes a data block.

        Args:
            address (int):
                Absolute address of the block.

            data (bytes):
                Block payload.

            size (int):
                Payload length, in bytes.

        Returns:
            bool: The block was accepted.
        """
        ...


# ============================================================================

class IhexDecoder:
    r"""Intel HEX streaming decoder.

    Holds the state of one decoding session.
    Decode independent streams with independent instances.

    Args:
        consumer (callable):
            Optional data block consumer, see :meth:`register_consumer`.

        capacity (int):
            Payload buffer capacity, in bytes.
            By default it is :attr:`CAPACITY`.
    """

    CAPACITY: int = 255
    r"""Default payload buffer capacity."""

    SUPPORTED_TYPES: Sequence[int] = (0x0, 0x1, 0x2, 0x3, 0x4, 0x5, 0xE)
    r"""Accepted record type codes."""

    def __init__(
        self,
        consumer: Optional[ConsumerType] = None,
        capacity: Optional[int] = None,
    ):

        if capacity is None:
            capacity = self.CAPACITY
        capacity = capacity.__index__()
        if capacity < 0:
            raise ValueError('negative capacity')

        self._capacity: int = capacity
        self._consumer: Optional[ConsumerType] = consumer
        self._payload: bytearray = bytearray(capacity)
        self._blank: bytes = bytes(capacity)

        self._handlers: Mapping[DecoderState, Callable[[int], None]] = {
            DecoderState.BYTE_COUNT: self._on_byte_count,
            DecoderState.ADDRESS: self._on_address,
            DecoderState.RECORD_TYPE: self._on_record_type,
            DecoderState.DATA: self._on_data,
            DecoderState.CHECKSUM: self._on_checksum,
        }

        self._state: DecoderState = DecoderState.START
        self._field_nibbles: int = 0
        self._high_nibble: int = 0
        self._toggle: bool = False
        self._checksum: int = 0
        self._byte_count: int = 0
        self._address_low: int = 0
        self._address_high: int = 0
        self._linear: bool = True
        self._record_type: int = 0
        self._payload_nibbles: int = 0
        self._offset: int = 0
        self._line: int = 1
        self._after_cr: bool = False
        self._last_error: Optional[DecodeError] = None

    @property
    def address_high(self) -> int:
        r"""int: Upper address bits set by the last extended address record."""

        return self._address_high

    @property
    def capacity(self) -> int:
        r"""int: Payload buffer capacity, in bytes."""

        return self._capacity

    @property
    def consumer(self) -> Optional[ConsumerType]:
        r"""callable: Registered data block consumer."""

        return self._consumer

    @property
    def last_error(self) -> Optional[DecodeError]:
        r"""DecodeError: Cause of the last :meth:`feed` failure."""

        return self._last_error

    @property
    def line(self) -> int:
        r"""int: Current line number, 1-based; lines end with CR, LF, or CR LF."""

        return self._line

    @property
    def linear(self) -> bool:
        r"""bool: Linear addressing mode; segmented if false."""

        return self._linear

    @property
    def offset(self) -> int:
        r"""int: Bytes consumed since the last reset."""

        return self._offset

    @property
    def state(self) -> DecoderState:
        r"""DecoderState: Current position within the record grammar."""

        return self._state

    def absolute_address(self, address_low: Optional[int] = None) -> int:
        r"""Computes an absolute address.

        Combines the sticky upper address with a 16-bit address field,
        as per the active addressing mode.

        Args:
            address_low (int):
                16-bit address field.
                By default it is that of the current record.

        Returns:
            int: 32-bit absolute address.

        Examples:
            >>> decoder = IhexDecoder()
            >>> decoder.feed(b':020000021000EC\r\n')
            True
            >>> hex(decoder.absolute_address(0x0020))
            '0x10020'
        """

        if address_low is None:
            address_low = self._address_low

        if self._linear:
            address = (self._address_high << 16) | address_low
        else:
            address = (self._address_high << 4) + address_low
        return address & 0xFFFFFFFF

    def reset(self) -> 'IhexDecoder':
        r"""Resets the decoding session.

        Clears the addressing state and moves back to the initial state.
        To be called before decoding a new file.
        The registered consumer is kept.

        Returns:
            IhexDecoder: `self`.
        """

        self._state = DecoderState.START
        self._field_nibbles = 0
        self._toggle = False
        self._checksum = 0
        self._address_low = 0
        self._address_high = 0
        self._linear = True
        self._offset = 0
        self._line = 1
        self._after_cr = False
        self._last_error = None
        return self

    def register_consumer(self, consumer: Optional[ConsumerType]) -> 'IhexDecoder':
        r"""Registers the data block consumer.

        Only one consumer is registered at a time.
        With ``None``, data records are still validated, but not delivered.

        Args:
            consumer (callable):
                Data block consumer, with :data:`ConsumerType` signature.

        Returns:
            IhexDecoder: `self`.
        """

        self._consumer = consumer
        return self

    def feed(self, data: AnyBytes, count: Optional[int] = None) -> bool:
        r"""Feeds bytes to the decoder.

        Bytes are processed strictly in order, one per state advance.
        A null byte ends processing successfully, even within a record;
        a later call resumes from there.

        Args:
            data (bytes):
                Input bytes.

            count (int):
                Number of leading bytes of `data` to process.
                By default it is the length of `data`.

        Returns:
            bool: All the bytes were accepted; false at the first failure,
            whose cause is kept by :attr:`last_error`.

        Raises:
            ValueError: `count` out of range.
        """

        size = len(data)
        if count is None:
            count = size
        else:
            count = count.__index__()
            if not 0 <= count <= size:
                raise ValueError('count overflow')

        self._last_error = None
        try:
            for index in range(count):
                c = data[index]
                if c == TERMINATOR:
                    return True
                self._advance(c)
                self._offset += 1

        except DecodeError as exc:
            self._last_error = exc
            _logger.debug('line %d, offset %d: %s', exc.line, exc.offset, exc)
            return False

        return True

    def feed_stream(
        self,
        stream: IO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> bool:
        r"""Feeds a binary stream to the decoder.

        Reads `stream` chunk by chunk until its end, a null byte,
        or the first failure.

        Args:
            stream (file):
                Binary input stream.

            chunk_size (int):
                Maximum chunk size, in bytes.

        Returns:
            bool: All the bytes were accepted.
        """

        chunk_size = chunk_size.__index__()
        if chunk_size <= 0:
            raise ValueError('non-positive chunk size')

        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                return True

            if not self.feed(chunk):
                return False

            if TERMINATOR in chunk:
                return True

    def _fail(self, exc_type, message: str) -> DecodeError:

        return exc_type(message, offset=self._offset, line=self._line)

    def _advance(self, c: int) -> None:

        state = self._state
        if state == DecoderState.START:
            self._checksum = 0
            self._toggle = False
            self._on_start(c)
            return

        try:
            nibble = HEX_NIBBLES[c]
        except KeyError:
            raise self._fail(InvalidHexError, f'invalid hex digit: {bytes([c])!r}') from None

        if self._toggle:
            self._checksum = (self._checksum + ((self._high_nibble << 4) | nibble)) & 0xFF
        else:
            self._high_nibble = nibble
        self._toggle = not self._toggle

        self._handlers[state](nibble)

    def _next_field(self, state: DecoderState) -> None:

        self._state = state
        self._field_nibbles = 0

    def _on_start(self, c: int) -> None:

        if c == LINE_FEED:
            if not self._after_cr:
                self._line += 1
            self._after_cr = False

        elif c == CARRIAGE_RETURN:
            self._line += 1
            self._after_cr = True

        elif c == START_CODE:
            self._after_cr = False
            self._byte_count = 0
            self._record_type = 0
            self._address_low = 0
            self._payload[:] = self._blank
            self._payload_nibbles = 0
            self._next_field(DecoderState.BYTE_COUNT)

        else:
            raise self._fail(InvalidStartCodeError, f'invalid start code: {bytes([c])!r}')

    def _on_byte_count(self, nibble: int) -> None:

        self._byte_count = (self._byte_count << 4) | nibble
        self._field_nibbles += 1
        if self._field_nibbles >= FIELD_NIBBLES[DecoderState.BYTE_COUNT]:
            self._next_field(DecoderState.ADDRESS)

    def _on_address(self, nibble: int) -> None:

        self._address_low = ((self._address_low << 4) | nibble) & 0xFFFF
        self._field_nibbles += 1
        if self._field_nibbles >= FIELD_NIBBLES[DecoderState.ADDRESS]:
            self._next_field(DecoderState.RECORD_TYPE)

    def _on_record_type(self, nibble: int) -> None:

        self._field_nibbles += 1
        if self._field_nibbles < FIELD_NIBBLES[DecoderState.RECORD_TYPE]:
            if nibble:
                raise self._fail(InvalidRecordTypeError, 'record type high nibble not zero')
            return

        if nibble not in self.SUPPORTED_TYPES:
            raise self._fail(InvalidRecordTypeError, f'unsupported record type: 0x{nibble:02X}')
        self._record_type = nibble

        if not self._byte_count:
            self._next_field(DecoderState.CHECKSUM)
        elif self._byte_count > self._capacity:
            raise self._fail(ByteCountOverflowError,
                             f'byte count overflow: {self._byte_count} > {self._capacity}')
        else:
            self._next_field(DecoderState.DATA)

    def _on_data(self, nibble: int) -> None:

        payload = self._payload
        index = self._payload_nibbles >> 1
        payload[index] = ((payload[index] << 4) | nibble) & 0xFF
        self._payload_nibbles += 1

        if (self._payload_nibbles >> 1) >= self._byte_count:
            self._next_field(DecoderState.CHECKSUM)

    def _on_checksum(self, nibble: int) -> None:

        self._field_nibbles += 1
        if self._field_nibbles < FIELD_NIBBLES[DecoderState.CHECKSUM]:
            return

        if (self._byte_count << 1) != self._payload_nibbles:
            raise self._fail(PayloadSizeError,
                             f'byte count mismatch: {self._byte_count} declared, '
                             f'{self._payload_nibbles >> 1} found')

        if self._checksum:
            raise self._fail(ChecksumError, f'checksum mismatch: residue 0x{self._checksum:02X}')

        record_type = self._record_type
        tag = RECORD_TAGS.get(record_type)
        payload = self._payload

        if tag is not None and tag.is_extension():
            self._address_high = int.from_bytes(payload[:2].ljust(2, b'\0'), byteorder='big')
            self._linear = (tag == IhexTag.EXTENDED_LINEAR_ADDRESS)

        size = self._payload_nibbles >> 1
        if _logger.isEnabledFor(logging.DEBUG):
            self._log_record(tag, size)

        if tag is not None and tag.is_data():
            consumer = self._consumer
            if consumer is not None:
                address = self.absolute_address()
                if not consumer(address, bytes(payload[:size]), size):
                    raise self._fail(ConsumerRejectedError,
                                     f'data block rejected at 0x{address:08X}')

        self._next_field(DecoderState.START)

    def _log_record(self, tag: Optional[IhexTag], size: int) -> None:

        if tag is None:
            _logger.debug('record type 0x%02X ignored', self._record_type)

        elif tag.is_data():
            _logger.debug('data (0x%08X): %s', self.absolute_address(),
                          hexlify(self._payload[:size]).decode())

        elif tag.is_eof():
            _logger.debug('end of file')

        elif tag.is_extension():
            kind = 'linear' if self._linear else 'segment'
            _logger.debug('extended %s address: 0x%08X', kind, self.absolute_address(0))

        else:  # elif tag.is_start():
            kind = 'linear' if tag == IhexTag.START_LINEAR_ADDRESS else 'segment'
            _logger.debug('start %s address', kind)


# ============================================================================

_session: IhexDecoder = IhexDecoder()


@deprecated(reason='Use IhexDecoder.reset() instead')
def reset_state() -> None:
    r"""Resets the process-wide decoding session."""

    _session.reset()


@deprecated(reason='Use IhexDecoder.register_consumer() instead')
def set_callback_func(consumer: Optional[ConsumerType]) -> None:
    r"""Registers the consumer of the process-wide decoding session."""

    _session.register_consumer(consumer)


@deprecated(reason='Use IhexDecoder.feed() instead')
def parse(data: AnyBytes, count: Optional[int] = None) -> bool:
    r"""Feeds bytes to the process-wide decoding session."""

    return _session.feed(data, count)
