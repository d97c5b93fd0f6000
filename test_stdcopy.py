#!/usr/bin/env python3
"""
Test Suite for the multiplexed log stream codec

Usage:
  pytest test_stdcopy.py
"""

import io
import unittest

from taskdriver.core.context import Context
from taskdriver.core.errors import Cancelled
from taskdriver.core.stdcopy import (
    STDERR,
    STDIN,
    STDOUT,
    SYSTEMERR,
    Frame,
    FrameError,
    StreamSystemError,
    encode_frame,
    read_frames,
    std_copy,
)


class TrickleReader:
    """Returns at most one byte per read, like a slow socket."""

    def __init__(self, data: bytes):
        self.data = io.BytesIO(data)

    def read(self, size=-1):
        return self.data.read(1)


class TestFrameCodec(unittest.TestCase):
    """Test cases for frame encoding and decoding"""

    def test_header_layout(self):
        """Header is tag, three zero bytes, big-endian length"""
        frame = encode_frame(STDERR, b"abc")
        self.assertEqual(frame, b"\x02\x00\x00\x00\x00\x00\x00\x03abc")

    def test_read_frames(self):
        """Frames are decoded in order with their stream tags"""
        data = encode_frame(STDOUT, b"out") + encode_frame(STDERR, b"err") + encode_frame(STDOUT, b"")
        frames = list(read_frames(io.BytesIO(data)))
        self.assertEqual(frames, [Frame(STDOUT, b"out"), Frame(STDERR, b"err"), Frame(STDOUT, b"")])

    def test_empty_stream(self):
        """An empty stream has no frames"""
        self.assertEqual(list(read_frames(io.BytesIO(b""))), [])

    def test_short_reads(self):
        """Frames split across many reads are reassembled"""
        data = encode_frame(STDOUT, b"hello world\n")
        frames = list(read_frames(TrickleReader(data)))
        self.assertEqual(frames, [Frame(STDOUT, b"hello world\n")])

    def test_truncated_header(self):
        with self.assertRaises(FrameError):
            list(read_frames(io.BytesIO(b"\x01\x00\x00")))

    def test_truncated_payload(self):
        data = encode_frame(STDOUT, b"hello")[:-2]
        with self.assertRaises(FrameError):
            list(read_frames(io.BytesIO(data)))

    def test_unknown_stream_tag(self):
        with self.assertRaises(FrameError):
            list(read_frames(io.BytesIO(encode_frame(7, b"x"))))


class TestStdCopy(unittest.TestCase):
    """Test cases for std_copy()"""

    def setUp(self):
        self.stdout = io.BytesIO()
        self.stderr = io.BytesIO()

    def test_demultiplex(self):
        """Interleaved frames are routed to their own sinks"""
        data = (
            encode_frame(STDOUT, b"line 1\n")
            + encode_frame(STDERR, b"oops\n")
            + encode_frame(STDOUT, b"line 2\n")
        )
        written = std_copy(self.stdout, self.stderr, io.BytesIO(data))

        self.assertEqual(self.stdout.getvalue(), b"line 1\nline 2\n")
        self.assertEqual(self.stderr.getvalue(), b"oops\n")
        self.assertEqual(written, (14, 5))

    def test_stdin_goes_to_stdout(self):
        std_copy(self.stdout, self.stderr, io.BytesIO(encode_frame(STDIN, b"echo")))
        self.assertEqual(self.stdout.getvalue(), b"echo")

    def test_system_error_frame(self):
        """A system-error frame stops the copy with its message"""
        data = encode_frame(STDOUT, b"before\n") + encode_frame(SYSTEMERR, b"runtime failure") + encode_frame(STDOUT, b"after\n")

        with self.assertRaises(StreamSystemError) as cm:
            std_copy(self.stdout, self.stderr, io.BytesIO(data))

        self.assertEqual(str(cm.exception), "runtime failure")
        self.assertEqual(self.stdout.getvalue(), b"before\n")

    def test_cancelled_context(self):
        """A cancelled context ends the copy with the context's error"""
        ctx = Context.background()
        ctx.cancel()

        with self.assertRaises(Cancelled):
            std_copy(self.stdout, self.stderr, io.BytesIO(encode_frame(STDOUT, b"x")), ctx=ctx)
        self.assertEqual(self.stdout.getvalue(), b"")

    def test_cancel_mid_copy(self):
        """Cancelling during the copy closes the stream and stops at the next frame"""
        ctx = Context.background()

        class CancelOnWrite(io.BytesIO):
            def write(self, data):
                ctx.cancel()
                return super().write(data)

        data = encode_frame(STDOUT, b"first") + encode_frame(STDOUT, b"second")
        stream = io.BytesIO(data)
        ctx.on_cancel(stream.close)

        sink = CancelOnWrite()
        with self.assertRaises(Cancelled):
            std_copy(sink, self.stderr, stream, ctx=ctx)
        self.assertTrue(stream.closed)
        self.assertEqual(sink.getvalue(), b"first")


if __name__ == '__main__':
    unittest.main()
