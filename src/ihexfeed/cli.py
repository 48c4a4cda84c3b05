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

"""
Module that contains the command line app.

Why does this file exist, and why not put this in __main__?

  You might be tempted to import things from __main__ later, but that will cause
  problems: the code will get executed twice:

  - When you run `python -m ihexfeed` python will execute
    ``__main__.py`` as a script. That means there won't be any
    ``ihexfeed.__main__`` in ``sys.modules``.
  - When you import __main__ it will get executed again (as a module) because
    there's no ``ihexfeed.__main__`` in ``sys.modules``.

  Also see (1) from https://click.palletsprojects.com/en/stable/setuptools/#setuptools-integration
"""

import logging
from typing import IO
from typing import Optional

import click

from .__init__ import __version__
from .consumers import BlockListConsumer
from .consumers import MemoryConsumer
from .crc import memory_crc32
from .crc import memory_image
from .decoder import DEFAULT_CHUNK_SIZE
from .decoder import ConsumerType
from .decoder import DecoderState
from .decoder import IhexDecoder
from .utils import format_block
from .utils import parse_int


class BasedIntParamType(click.ParamType):
    name = 'integer'

    def convert(self, value, param, ctx):
        try:
            return parse_int(value)
        except ValueError:
            self.fail(f'invalid integer: {value!r}', param, ctx)


class ByteIntParamType(click.ParamType):
    name = 'byte'

    def convert(self, value, param, ctx):
        try:
            b = parse_int(value)
            if not 0 <= b <= 255:
                raise ValueError()
            return b
        except ValueError:
            self.fail(f'invalid byte: {value!r}', param, ctx)


class ChunkSizeParamType(click.ParamType):
    name = 'size'

    def convert(self, value, param, ctx):
        try:
            size = parse_int(value)
            if size <= 0:
                raise ValueError()
            return size
        except ValueError:
            self.fail(f'invalid chunk size: {value!r}', param, ctx)


BASED_INT = BasedIntParamType()
BYTE_INT = ByteIntParamType()
CHUNK_SIZE = ChunkSizeParamType()

FILE_IN = click.File('rb')
FILE_OUT = click.File('wb')


# ----------------------------------------------------------------------------

def decode_file(
    stream: IO,
    consumer: Optional[ConsumerType],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> IhexDecoder:
    r"""Decodes a whole file.

    Args:
        stream (file):
            Binary input stream.

        consumer (callable):
            Data block consumer.

        chunk_size (int):
            Read chunk size, in bytes.

    Returns:
        :class:`IhexDecoder`: Decoder at the end of the file.

    Raises:
        :class:`click.ClickException`: Decoding failure, or truncated record.
    """

    decoder = IhexDecoder(consumer)
    if not decoder.feed_stream(stream, chunk_size=chunk_size):
        error = decoder.last_error
        raise click.ClickException(f'line {error.line}: {error}')

    if decoder.state != DecoderState.START:
        raise click.ClickException(f'line {decoder.line}: truncated record')
    return decoder


def print_version(ctx, _, value):

    if not value or ctx.resilient_parsing:
        return

    click.echo(str(__version__))
    ctx.exit()


# ============================================================================

@click.group()
@click.option('-V', '--version', is_flag=True, is_eager=True,
              expose_value=False, callback=print_version, help="""
    Prints the package version number.
""")
@click.option('-v', '--verbose', is_flag=True, help="""
    Logs every decoded record.
""")
def main(verbose: bool) -> None:
    """
    Command line utilities for streaming Intel HEX decoding.

    Being built with `Click <https://click.palletsprojects.com/en/stable/>`_, all the
    commands follow POSIX-like syntax rules, as well as reserving the virtual
    file path ``-`` for command chaining via standard output/input buffering.
    """

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')


# ----------------------------------------------------------------------------

@main.command()
@click.option('-c', '--chunk-size', type=CHUNK_SIZE, default=DEFAULT_CHUNK_SIZE,
              show_default=True, help="""
    Input read chunk size, in bytes.
""")
@click.argument('infile', type=FILE_IN)
def validate(
    chunk_size: int,
    infile: IO,
) -> None:
    r"""Validates an Intel HEX file.

    ``INFILE`` is the path of the input file.
    Set to ``-`` to read from standard input.
    """

    decode_file(infile, None, chunk_size=chunk_size)


# ----------------------------------------------------------------------------

@main.command()
@click.option('-c', '--chunk-size', type=CHUNK_SIZE, default=DEFAULT_CHUNK_SIZE,
              show_default=True, help="""
    Input read chunk size, in bytes.
""")
@click.option('-u', '--lower', is_flag=True, help="""
    Uses lowercase hexadecimal digits.
""")
@click.argument('infile', type=FILE_IN)
def dump(
    chunk_size: int,
    lower: bool,
    infile: IO,
) -> None:
    r"""Prints the decoded data blocks.

    One line per data record, with its absolute address.

    ``INFILE`` is the path of the input file.
    Set to ``-`` to read from standard input.
    """

    consumer = BlockListConsumer()
    decode_file(infile, consumer, chunk_size=chunk_size)

    for address, data in consumer.blocks:
        click.echo(format_block(address, data, upper=not lower))


# ----------------------------------------------------------------------------

@main.command()
@click.option('-c', '--chunk-size', type=CHUNK_SIZE, default=DEFAULT_CHUNK_SIZE,
              show_default=True, help="""
    Input read chunk size, in bytes.
""")
@click.option('-s', '--start', type=BASED_INT, help="""
    Inclusive start address.
    By default it applies from the start of the data contents.
""")
@click.option('-e', '--endex', type=BASED_INT, help="""
    Exclusive end address.
    By default it applies till the end of the data contents.
""")
@click.option('-f', '--fill', type=BYTE_INT, default=0xFF, show_default=True, help="""
    Byte value used to flood memory holes.
""")
@click.argument('infile', type=FILE_IN)
def crc32(
    chunk_size: int,
    start: Optional[int],
    endex: Optional[int],
    fill: int,
    infile: IO,
) -> None:
    r"""Prints the CRC-32 of the decoded image.

    ``INFILE`` is the path of the input file.
    Set to ``-`` to read from standard input.
    """

    consumer = MemoryConsumer()
    decode_file(infile, consumer, chunk_size=chunk_size)

    crc = memory_crc32(consumer.memory, start=start, endex=endex, fill=fill)
    click.echo(f'0x{crc:08X}')


# ----------------------------------------------------------------------------

@main.command()
@click.option('-c', '--chunk-size', type=CHUNK_SIZE, default=DEFAULT_CHUNK_SIZE,
              show_default=True, help="""
    Input read chunk size, in bytes.
""")
@click.option('-s', '--start', type=BASED_INT, help="""
    Inclusive start address.
    By default it applies from the start of the data contents.
""")
@click.option('-e', '--endex', type=BASED_INT, help="""
    Exclusive end address.
    By default it applies till the end of the data contents.
""")
@click.option('-f', '--fill', type=BYTE_INT, default=0xFF, show_default=True, help="""
    Byte value used to flood memory holes.
""")
@click.argument('infile', type=FILE_IN)
@click.argument('outfile', type=FILE_OUT)
def tobin(
    chunk_size: int,
    start: Optional[int],
    endex: Optional[int],
    fill: int,
    infile: IO,
    outfile: IO,
) -> None:
    r"""Writes the decoded image as raw binary.

    ``INFILE`` is the path of the input file.
    Set to ``-`` to read from standard input.

    ``OUTFILE`` is the path of the output file.
    Set to ``-`` to write to standard output.
    """

    consumer = MemoryConsumer()
    decode_file(infile, consumer, chunk_size=chunk_size)

    outfile.write(memory_image(consumer.memory, start=start, endex=endex, fill=fill))
