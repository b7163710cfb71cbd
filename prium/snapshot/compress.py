"""Streaming gzip for uploads and downloads.

GzipStream compresses lazily: it only reads from its source when the
consumer (the S3 uploader) asks for more output, so a slow upload stops the
read from the cassandra host instead of buffering the whole file.
"""

import gzip
import io
import zlib

CHUNK_SIZE = 1024 * 1024
COMPRESS_LEVEL = 6

# 16 + MAX_WBITS selects the gzip container instead of raw zlib.
_GZIP_WBITS = 16 + zlib.MAX_WBITS


class GzipStream(io.RawIOBase):
    """Read-only file object yielding the gzip of another stream."""

    def __init__(self, source, chunk_size=CHUNK_SIZE, level=COMPRESS_LEVEL):
        self._source = source
        self._chunk_size = chunk_size
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)
        self._buffer = bytearray()
        self._eof = False

    def readable(self):
        return True

    def readinto(self, b):
        while len(self._buffer) < len(b) and not self._eof:
            chunk = self._source.read(self._chunk_size)
            if chunk:
                self._buffer += self._compressor.compress(chunk)
            else:
                self._buffer += self._compressor.flush()
                self._eof = True
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        del self._buffer[:n]
        return n


def gunzip_stream(stream):
    """Wrap a readable gzip stream so reads return decompressed bytes."""
    return gzip.GzipFile(fileobj=stream, mode="rb")
