"""Ogg/Opus encoding of mono 16 kHz speech (RFC 3533 framing, RFC 7845 headers)."""

from __future__ import annotations

import logging
import struct
from typing import Any, List, Optional, Protocol

import numpy as np

from errors import EncodingError

try:
    import opuslib
except Exception:  # pragma: no cover - raised when libopus is missing too
    opuslib = None  # type: ignore

logger = logging.getLogger(__name__)

EXPECTED_SAMPLE_RATE = 16000
# 20 ms at 16 kHz
FRAME_SIZE = 320
BITRATE = 24000
# libopus encoder delay at 48 kHz
PRE_SKIP = 312
# Granule positions always count 48 kHz samples
GRANULE_PER_FRAME = 960
STREAM_SERIAL = 1
VENDOR = b"VoiceDictation"

OGG_CAPTURE_PATTERN = b"OggS"
MAX_SEGMENTS_PER_PAGE = 255
MAX_PAGE_BODY = 4096

FLAG_CONTINUED = 0x01
FLAG_BOS = 0x02
FLAG_EOS = 0x04


def _crc_table() -> List[int]:
    table = []
    for i in range(256):
        crc = i << 24
        for _ in range(8):
            crc = ((crc << 1) ^ 0x04C11DB7) if crc & 0x80000000 else (crc << 1)
        table.append(crc & 0xFFFFFFFF)
    return table


_CRC_TABLE = _crc_table()


def ogg_crc(data: bytes) -> int:
    """Ogg page checksum (CRC-32, poly 0x04C11DB7, no reflection, zero init)."""
    crc = 0
    for byte in data:
        crc = ((crc << 8) & 0xFFFFFFFF) ^ _CRC_TABLE[((crc >> 24) & 0xFF) ^ byte]
    return crc


def _lacing(length: int) -> bytes:
    return bytes([255] * (length // 255) + [length % 255])


class OggPageWriter:
    """Packs packets of one logical stream into Ogg pages."""

    def __init__(self, serial: int = STREAM_SERIAL) -> None:
        self._serial = serial
        self._sequence = 0
        self._pending: List[bytes] = []
        self._granule = 0
        self._out = bytearray()

    def write_packet(self, packet: bytes, granule: int, end_page: bool = False, end_stream: bool = False) -> None:
        lacing_len = len(packet) // 255 + 1
        if self._pending and (
            self._pending_segments() + lacing_len > MAX_SEGMENTS_PER_PAGE
            or self._pending_bytes() + len(packet) > MAX_PAGE_BODY
        ):
            self._flush(eos=False)

        self._pending.append(packet)
        self._granule = granule
        if end_page or end_stream:
            self._flush(eos=end_stream)

    def getvalue(self) -> bytes:
        if self._pending:
            self._flush(eos=False)
        return bytes(self._out)

    def _pending_segments(self) -> int:
        return sum(len(p) // 255 + 1 for p in self._pending)

    def _pending_bytes(self) -> int:
        return sum(len(p) for p in self._pending)

    def _flush(self, eos: bool) -> None:
        flags = 0
        if self._sequence == 0:
            flags |= FLAG_BOS
        if eos:
            flags |= FLAG_EOS

        segment_table = b"".join(_lacing(len(p)) for p in self._pending)
        body = b"".join(self._pending)
        header = struct.pack(
            "<4sBBqIIIB",
            OGG_CAPTURE_PATTERN,
            0,
            flags,
            self._granule,
            self._serial,
            self._sequence,
            0,
            len(segment_table),
        )
        page = bytearray(header + segment_table + body)
        struct.pack_into("<I", page, 22, ogg_crc(bytes(page)))
        self._out.extend(page)
        self._sequence += 1
        self._pending = []


def build_opus_head(input_sample_rate: int, channels: int = 1) -> bytes:
    """19-byte OpusHead identification header."""
    return struct.pack("<8sBBHIhB", b"OpusHead", 1, channels, PRE_SKIP, input_sample_rate, 0, 0)


def build_opus_tags(vendor: bytes = VENDOR) -> bytes:
    """OpusTags comment header with a vendor string and no comments."""
    return b"OpusTags" + struct.pack("<I", len(vendor)) + vendor + struct.pack("<I", 0)


class FrameEncoder(Protocol):
    def encode(self, frame: np.ndarray) -> bytes: ...


class OpusFrameEncoder:
    """libopus VoIP encoder at a speech bitrate."""

    def __init__(self, sample_rate: int = EXPECTED_SAMPLE_RATE, bitrate: int = BITRATE) -> None:
        if opuslib is None:
            raise EncodingError("opuslib is not installed or libopus is missing")
        try:
            self._encoder: Any = opuslib.Encoder(sample_rate, 1, "voip")
            self._encoder.bitrate = bitrate
        except Exception as exc:
            raise EncodingError(f"failed to create Opus encoder: {exc}") from exc

    def encode(self, frame: np.ndarray) -> bytes:
        pcm = np.asarray(frame, dtype=np.float32).tobytes()
        try:
            return self._encoder.encode_float(pcm, FRAME_SIZE)
        except Exception as exc:
            raise EncodingError(f"Opus frame encoding failed: {exc}") from exc


def encode_ogg_opus(samples, sample_rate: int, frame_encoder: Optional[FrameEncoder] = None) -> bytes:
    """Encode mono 16 kHz float samples into an Ogg/Opus file.

    Empty input produces empty output. The last frame is zero-padded and
    its page carries the end-of-stream flag.
    """
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    if len(data) == 0:
        return b""
    if sample_rate != EXPECTED_SAMPLE_RATE:
        raise EncodingError(f"expected {EXPECTED_SAMPLE_RATE} Hz, got {sample_rate} Hz")

    encoder = frame_encoder or OpusFrameEncoder(sample_rate)
    writer = OggPageWriter()
    writer.write_packet(build_opus_head(sample_rate), granule=0, end_page=True)
    writer.write_packet(build_opus_tags(), granule=0, end_page=True)

    total_frames = -(-len(data) // FRAME_SIZE)
    granule = 0
    for i in range(total_frames):
        frame = data[i * FRAME_SIZE:(i + 1) * FRAME_SIZE]
        if len(frame) < FRAME_SIZE:
            frame = np.pad(frame, (0, FRAME_SIZE - len(frame)))
        granule += GRANULE_PER_FRAME
        writer.write_packet(encoder.encode(frame), granule=granule, end_stream=i == total_frames - 1)

    out = writer.getvalue()
    logger.debug(
        "Ogg/Opus encoding complete: %d samples -> %d bytes (%.1fx)",
        len(data),
        len(out),
        data.nbytes / max(len(out), 1),
    )
    return out
