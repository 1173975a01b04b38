import asyncio
import io
import sys
from pathlib import Path
from typing import IO

import pytest

from ihexload.base import ErrorKind
from ihexload.base import FormatError
from ihexload.firmware import Firmware
from ihexload.ihex import IhexRecord
from ihexload.loader import DecodePhase
from ihexload.loader import DecodeState
from ihexload.loader import iter_lines
from ihexload.loader import load
from ihexload.loader import load_async
from ihexload.loader import parse

DATA_0000 = b':0400000000010203F6'
DATA_0004 = b':0400040004050607E2'
DATA_0010 = b':020010001122BB'
ELA_ABCD = b':02000004ABCD82'
ESA_1234 = b':020000021234B6'
EOF_LINE = b':00000001FF'

SIMPLE_HEX = (
    b':0312340061626391\r\n'
    b':02000004ABCD82\r\n'
    b':0356780078797AC4\r\n'
    b':04000005ABCD5678B1\r\n'
    b':00000001FF\r\n'
)


@pytest.fixture
def tmppath(tmpdir):
    return Path(str(tmpdir))


class replace_stdin:

    def __init__(self, stream: IO):
        self.buffer = stream
        self.original = sys.stdin

    def __enter__(self):
        sys.stdin = self
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        sys.stdin = self.original


def join_lines(*lines):
    return b''.join(line + b'\n' for line in lines)


class TestDecodeState:

    def test___init__(self):
        state = DecodeState()
        assert isinstance(state.firmware, Firmware)
        assert state.no_block_merging is False
        assert state.extended_linear_address == 0
        assert state.extended_segment_address == 0
        assert state.eof_seen is False
        assert state.line_number == 0
        assert state.phase is DecodePhase.SCANNING

    def test___init___firmware(self):
        firmware = Firmware()
        state = DecodeState(firmware, no_block_merging=True)
        assert state.firmware is firmware
        assert state.no_block_merging is True

    def test_apply_data(self):
        state = DecodeState()
        record = IhexRecord.parse(DATA_0010)
        assert state.apply(record).ok is True
        assert state.firmware.to_blocks() == [[0x0010, b'\x11\x22']]

    def test_apply_end_of_file(self):
        state = DecodeState()
        assert state.apply(IhexRecord.parse(EOF_LINE)).ok is True
        assert state.eof_seen is True
        assert state.phase is DecodePhase.TERMINATED

    def test_apply_extensions(self):
        state = DecodeState()
        assert state.apply(IhexRecord.parse(ELA_ABCD)).ok is True
        assert state.apply(IhexRecord.parse(ESA_1234)).ok is True
        assert state.extended_linear_address == 0xABCD0000
        assert state.extended_segment_address == 0x00012340
        state.apply(IhexRecord.parse(DATA_0010))
        assert state.firmware.to_blocks() == [[0xABCE2350, b'\x11\x22']]

    def test_apply_start_ignored(self):
        state = DecodeState()
        for line in [b':04000005ABCD5678B1', b':0400000300003800C1']:
            assert state.apply(IhexRecord.parse(line)).ok is True
        assert state.extended_linear_address == 0
        assert state.extended_segment_address == 0
        assert state.eof_seen is False
        assert not state.firmware

    def test_feed_blank(self):
        state = DecodeState()
        for line in [b'', b'\n', b'\r\n', b' \t\r\n']:
            assert state.feed(line).ok is True
        assert state.line_number == 4
        assert not state.firmware

    def test_feed_counts_lines(self):
        state = DecodeState()
        state.feed(b'\n')
        state.feed(DATA_0000 + b'\r\n')
        result = state.feed(b':01000001FF\r\n')
        assert result.ok is False
        assert result.error.kind is ErrorKind.LENGTH
        assert state.line_number == 3

    def test_feed_sets_coords(self, monkeypatch):
        applied = []
        state = DecodeState()
        monkeypatch.setattr(state, 'apply', lambda record: applied.append(record) or None)
        state.feed(b'\n')
        state.feed(EOF_LINE)
        assert applied[0].coords == (2, 0)

    def test_feed_extended_linear_address(self):
        state = DecodeState()
        assert state.feed(ELA_ABCD).ok is True
        assert state.extended_linear_address == 0xABCD0000
        assert state.feed(b':020000040800F2').ok is True
        assert state.extended_linear_address == 0x08000000

    def test_feed_extended_segment_address(self):
        state = DecodeState()
        assert state.feed(ESA_1234).ok is True
        assert state.extended_segment_address == 0x00012340
        assert state.feed(b':020000021200EA').ok is True
        assert state.extended_segment_address == 0x00012000

    def test_feed_extension_wrong_size(self):
        for line in [b':01000004AB50', b':03000004ABCDEF92', b':0100000212EB']:
            state = DecodeState()
            result = state.feed(line)
            assert result.ok is False
            assert result.error.kind is ErrorKind.EXTENSION_LENGTH

    def test_feed_end_of_file(self):
        state = DecodeState()
        assert state.feed(EOF_LINE).ok is True
        assert state.eof_seen is True
        assert state.phase is DecodePhase.TERMINATED
        assert state.feed(b'  \r\n').ok is True

        result = state.feed(DATA_0000)
        assert result.ok is False
        assert result.error.kind is ErrorKind.AFTER_EOF
        assert result.error.message == 'record found after EOF record'
        assert state.phase is DecodePhase.TERMINATED

    def test_feed_after_eof_not_decoded(self):
        state = DecodeState()
        state.feed(EOF_LINE)
        result = state.feed(b'garbage')
        assert result.error.kind is ErrorKind.AFTER_EOF


class TestIterLines:

    def test_iter_lines_empty(self):
        assert list(iter_lines(io.BytesIO(b''))) == []

    def test_iter_lines_terminators(self):
        stream = io.BytesIO(b'a\nb\r\nc\rd\r\re')
        assert list(iter_lines(stream)) == [b'a', b'b', b'c', b'd', b'', b'e']

    def test_iter_lines_blank(self):
        stream = io.BytesIO(b'\n\r\n\r')
        assert list(iter_lines(stream)) == [b'', b'', b'']

    def test_iter_lines_utf8_bom(self):
        stream = io.BytesIO(b'\xEF\xBB\xBFa\n\xEF\xBB\xBFb\n')
        assert list(iter_lines(stream)) == [b'a', b'\xEF\xBB\xBFb']

    def test_iter_lines_utf8_bom_only(self):
        assert list(iter_lines(io.BytesIO(b'\xEF\xBB\xBF'))) == [b'']


class TestParse:

    def test_parse_empty(self):
        for buffer in [b'', b'\n', b'\r\n\r\n', b'  \t\n\n']:
            firmware = parse(buffer)
            assert isinstance(firmware, Firmware)
            assert not firmware

    def test_parse_stream(self):
        firmware = parse(io.BytesIO(SIMPLE_HEX))
        assert firmware.to_blocks() == [[0x1234, b'abc'], [0xABCD5678, b'xyz']]

    def test_parse_buffers(self):
        for buffer in [SIMPLE_HEX, bytearray(SIMPLE_HEX), memoryview(SIMPLE_HEX)]:
            firmware = parse(buffer)
            assert firmware.to_blocks() == [[0x1234, b'abc'], [0xABCD5678, b'xyz']]

    def test_parse_extended_linear_address(self):
        firmware = parse(join_lines(ELA_ABCD, DATA_0010, EOF_LINE))
        assert firmware.to_blocks() == [[0xABCD0010, b'\x11\x22']]

    def test_parse_extended_segment_address(self):
        firmware = parse(join_lines(ESA_1234, b':01100000AA45', EOF_LINE))
        assert firmware.to_blocks() == [[0x00013340, b'\xAA']]

    def test_parse_extension_replaced(self):
        buffer = join_lines(
            ELA_ABCD,
            DATA_0010,
            b':020000040800F2',
            DATA_0010,
            EOF_LINE,
        )
        firmware = parse(buffer)
        assert firmware.to_blocks() == [[0x08000010, b'\x11\x22'], [0xABCD0010, b'\x11\x22']]

    def test_parse_extensions_added(self):
        firmware = parse(join_lines(ELA_ABCD, ESA_1234, DATA_0010, EOF_LINE))
        assert firmware.to_blocks() == [[0xABCD0000 + 0x12340 + 0x10, b'\x11\x22']]

    def test_parse_address_wraparound(self):
        buffer = join_lines(
            b':02000004FFFFFC',
            b':02000002FFFFFE',
            b':01FFFF00AA57',
            EOF_LINE,
        )
        firmware = parse(buffer)
        assert firmware.to_blocks() == [[0x000FFFEF, b'\xAA']]

    def test_parse_merging(self):
        firmware = parse(join_lines(DATA_0000, DATA_0004, EOF_LINE))
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03\x04\x05\x06\x07']]

    def test_parse_no_merging(self):
        firmware = parse(join_lines(DATA_0000, DATA_0004, EOF_LINE), no_block_merging=True)
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03'], [4, b'\x04\x05\x06\x07']]

    def test_parse_start_records_ignored(self):
        buffer = join_lines(
            DATA_0000,
            b':0400000300003800C1',
            b':04000005000000CD2A',
            EOF_LINE,
        )
        firmware = parse(buffer)
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03']]

    def test_parse_missing_eof(self):
        firmware = parse(join_lines(DATA_0000))
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03']]

    def test_parse_trailing_blank_lines(self):
        firmware = parse(join_lines(DATA_0000, EOF_LINE, b'', b'   ', b'\t'))
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03']]

    def test_parse_without_final_newline(self):
        firmware = parse(DATA_0000 + b'\n' + EOF_LINE)
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03']]

    def test_parse_cr_line_endings(self):
        buffer = DATA_0000 + b'\r' + DATA_0004 + b'\r' + EOF_LINE + b'\r'
        firmware = parse(buffer)
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03\x04\x05\x06\x07']]

    def test_parse_mixed_line_endings(self):
        buffer = DATA_0000 + b'\r\n' + DATA_0004 + b'\r' + EOF_LINE + b'\n'
        firmware = parse(buffer, no_block_merging=True)
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03'], [4, b'\x04\x05\x06\x07']]

    def test_parse_raises_cr_line_number(self):
        buffer = DATA_0000 + b'\r\r' + EOF_LINE + b'\r' + DATA_0004 + b'\r'
        with pytest.raises(FormatError, match='line 4: record found after EOF record'):
            parse(buffer)

    def test_parse_utf8_bom(self):
        firmware = parse(b'\xEF\xBB\xBF' + join_lines(DATA_0000, EOF_LINE))
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03']]

    def test_parse_raises_utf8_bom_not_first(self):
        buffer = join_lines(DATA_0000) + b'\xEF\xBB\xBF' + join_lines(EOF_LINE)
        with pytest.raises(FormatError) as info:
            parse(buffer)
        assert info.value.line_number == 2
        assert info.value.kind is ErrorKind.START_CODE

    def test_parse_raises_after_eof(self):
        buffer = join_lines(DATA_0000, EOF_LINE, DATA_0004)
        with pytest.raises(FormatError, match='line 3: record found after EOF record') as info:
            parse(buffer)
        assert info.value.line_number == 3
        assert info.value.kind is ErrorKind.AFTER_EOF

    def test_parse_raises_after_eof_blank_lines(self):
        buffer = join_lines(DATA_0000, b'', EOF_LINE, b'', DATA_0004)
        with pytest.raises(FormatError) as info:
            parse(buffer)
        assert info.value.line_number == 5
        assert info.value.message == 'record found after EOF record'

    def test_parse_raises_line_number(self):
        vector = [
            (b':00000001F', ErrorKind.TRUNCATED, 'truncated record'),
            (b'!00000001FF', ErrorKind.START_CODE, "invalid start code '!' (21h)"),
            (b':0G000001FF', ErrorKind.HEX_VALUE, 'invalid hexadecimal value'),
            (b':01000001FF', ErrorKind.LENGTH, 'invalid record length'),
            (b':00000006FA', ErrorKind.RECORD_TYPE, "unsupported record type '06h'"),
            (b':0400000000010203F7', ErrorKind.CHECKSUM,
             'invalid checksum (expected: F6h, reported: F7h)'),
            (b':01000004AB50', ErrorKind.EXTENSION_LENGTH,
             "invalid data length for 'Extended Linear Address' record"),
            (b':0100000212EB', ErrorKind.EXTENSION_LENGTH,
             "invalid data length for 'Extended Segment Address' record"),
        ]
        for line, kind, message in vector:
            buffer = join_lines(DATA_0000, b'', line, EOF_LINE)
            with pytest.raises(FormatError) as info:
                parse(buffer)
            assert info.value.line_number == 3
            assert info.value.kind is kind
            assert info.value.message == message
            assert str(info.value) == f'line 3: {message}'

    def test_parse_raises_first_error(self):
        buffer = join_lines(b':01000001FF', b':00000006FA')
        with pytest.raises(FormatError) as info:
            parse(buffer)
        assert info.value.line_number == 1
        assert info.value.kind is ErrorKind.LENGTH

    def test_parse_leaves_stream_open(self):
        stream = io.BytesIO(SIMPLE_HEX)
        parse(stream)
        assert not stream.closed


class TestLoad:

    def test_load_path(self, tmppath):
        path = tmppath / 'simple.hex'
        path.write_bytes(SIMPLE_HEX)
        expected = [[0x1234, b'abc'], [0xABCD5678, b'xyz']]
        assert load(str(path)).to_blocks() == expected
        assert load(path).to_blocks() == expected
        assert load(str(path).encode()).to_blocks() == expected

    def test_load_path_no_merging(self, tmppath):
        path = tmppath / 'split.hex'
        path.write_bytes(join_lines(DATA_0000, DATA_0004, EOF_LINE))
        firmware = load(str(path), no_block_merging=True)
        assert len(firmware) == 2

    def test_load_stream(self):
        stream = io.BytesIO(SIMPLE_HEX)
        firmware = load(stream)
        assert firmware.to_blocks() == [[0x1234, b'abc'], [0xABCD5678, b'xyz']]
        assert not stream.closed

    def test_load_stdin(self):
        stream = io.BytesIO(SIMPLE_HEX)
        with replace_stdin(stream):
            firmware = load(None)
        assert firmware.to_blocks() == [[0x1234, b'abc'], [0xABCD5678, b'xyz']]

    def test_load_raises_missing(self, tmppath):
        with pytest.raises(FileNotFoundError):
            load(str(tmppath / 'missing.hex'))

    def test_load_raises_format(self, tmppath):
        path = tmppath / 'broken.hex'
        path.write_bytes(join_lines(DATA_0000, b':0400040004050607E3'))
        with pytest.raises(FormatError, match='line 2: invalid checksum'):
            load(str(path))

    def test_load_async_path(self, tmppath):
        path = tmppath / 'simple.hex'
        path.write_bytes(SIMPLE_HEX)
        firmware = asyncio.run(load_async(str(path)))
        assert firmware.to_blocks() == [[0x1234, b'abc'], [0xABCD5678, b'xyz']]

    def test_load_async_stream(self):
        stream = io.BytesIO(join_lines(DATA_0000, DATA_0004, EOF_LINE))
        firmware = asyncio.run(load_async(stream, no_block_merging=True))
        assert firmware.to_blocks() == [[0, b'\x00\x01\x02\x03'], [4, b'\x04\x05\x06\x07']]

    def test_load_async_raises(self):
        stream = io.BytesIO(join_lines(EOF_LINE, DATA_0000))
        with pytest.raises(FormatError, match='line 2: record found after EOF record'):
            asyncio.run(load_async(stream))
