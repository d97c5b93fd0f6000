"""
Codec for the runtime's multiplexed stdout/stderr stream.

When a container runs without a TTY the runtime interleaves its output
streams into frames. Each frame is an 8-byte header followed by a payload:

    byte 0      stream tag (0 stdin, 1 stdout, 2 stderr, 3 system error)
    bytes 1-3   zero
    bytes 4-7   payload length, big-endian uint32
"""

import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Tuple


STDIN = 0
STDOUT = 1
STDERR = 2
SYSTEMERR = 3

HEADER = struct.Struct(">BxxxL")


class FrameError(Exception):
    """The stream is not validly framed."""


class StreamSystemError(Exception):
    """The runtime reported an error inside the stream."""


@dataclass(frozen=True)
class Frame:
    stream: int
    payload: bytes


def encode_frame(stream: int, payload: bytes) -> bytes:
    """Frame a payload for the given stream tag."""
    return HEADER.pack(stream, len(payload)) + payload


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    buf = b""
    while len(buf) < size:
        chunk = reader.read(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return buf


def read_frames(reader: BinaryIO) -> Iterator[Frame]:
    """
    Decode frames from a readable binary stream until it is exhausted.

    Raises:
        FrameError: If the stream ends inside a frame or has an unknown tag
    """
    while True:
        header = _read_exact(reader, HEADER.size)
        if not header:
            return
        if len(header) < HEADER.size:
            raise FrameError(f"Truncated frame header ({len(header)} bytes)")

        stream, size = HEADER.unpack(header)
        if stream not in (STDIN, STDOUT, STDERR, SYSTEMERR):
            raise FrameError(f"Unrecognized stream tag: {stream}")

        payload = _read_exact(reader, size)
        if len(payload) < size:
            raise FrameError(f"Truncated frame payload ({len(payload)} of {size} bytes)")
        yield Frame(stream, payload)


def std_copy(stdout: BinaryIO, stderr: BinaryIO, reader: BinaryIO, ctx=None) -> Tuple[int, int]:
    """
    Demultiplex a framed stream into separate stdout and stderr sinks.

    stdin frames are routed to stdout. A system-error frame stops the copy.
    When ctx is given it is checked between frames, and a read failure on a
    stream closed by cancellation is reported as the context's error.

    Args:
        stdout: Destination for stdout (and stdin) payloads
        stderr: Destination for stderr payloads
        reader: The framed source stream
        ctx: Optional taskdriver.core.context.Context

    Returns:
        Tuple[int, int]: Bytes written to stdout and to stderr

    Raises:
        FrameError: On malformed framing
        StreamSystemError: On a system-error frame
        ContextError: If the context ended during the copy
    """
    written_out = 0
    written_err = 0
    frames = read_frames(reader)

    while True:
        _check(ctx)
        try:
            frame = next(frames)
        except StopIteration:
            break
        except (OSError, ValueError) as e:
            err = _ctx_err(ctx)
            if err is not None:
                raise err from e
            raise

        if frame.stream == SYSTEMERR:
            raise StreamSystemError(frame.payload.decode("utf-8", errors="replace"))
        if frame.stream == STDERR:
            stderr.write(frame.payload)
            written_err += len(frame.payload)
        else:
            stdout.write(frame.payload)
            written_out += len(frame.payload)

    _check(ctx)
    stdout.flush()
    stderr.flush()
    return written_out, written_err


def _ctx_err(ctx) -> Optional[Exception]:
    return ctx.err() if ctx is not None else None


def _check(ctx):
    err = _ctx_err(ctx)
    if err is not None:
        raise err
