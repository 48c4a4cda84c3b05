# -*- coding: utf-8 -*-
from click.testing import CliRunner

import ihexfeed
from ihexfeed.cli import main


def test_main():
    runner = CliRunner()
    result = runner.invoke(main, [])

    assert result.output.strip().startswith('Usage:')


def test_exports():
    decoder = ihexfeed.IhexDecoder(ihexfeed.MemoryConsumer())
    assert isinstance(decoder.consumer, ihexfeed.BaseConsumer)
    assert issubclass(ihexfeed.ChecksumError, ihexfeed.DecodeError)
    assert ihexfeed.crc32_calculate(b'123456789') == 0xCBF43926
    assert ihexfeed.DecoderState.START == 0
    assert ihexfeed.IhexTag.DATA == 0
