"""
Decrypter contract and the two container families.

A decrypter never assumes where the stream is positioned: every operation
seeks explicitly. Ciphers are position-pure, so any plaintext window
`[offset, offset + length)` can be produced without touching earlier bytes.
"""

import abc
import base64
import binascii
import io
import json
import os
import pathlib
import re
import threading
import typing

import numpy as np
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, ID3, ID3NoHeaderError
from mutagen.mp4 import MP4, MP4Cover

from . import streams
from .audio import AudioFormat, AudioUtils
from .errors import (
    DecryptCancelledError,
    FormatMismatchError,
    InvalidKeyError,
    KeyNotFoundError,
    OutOfRangeError,
    StreamIOError,
    UnsupportedAudioFormatError,
    UnsupportedMetadataError,
)
from .kgdb import KGDatabase, KeyTable
from .qmc2 import Qmc2Factory

ProgressCallback = typing.Callable[[int, int], None]
DEFAULT_BUFFER_SIZE = 81920


class Decrypter(abc.ABC):
    """Base class every container decrypter implements."""

    name = ""

    @abc.abstractmethod
    def check_support(self, stream: typing.BinaryIO) -> None:
        """Raise `FormatMismatchError` unless the stream header is this format."""

    @abc.abstractmethod
    def detect_audio_format(self, stream: typing.BinaryIO) -> AudioFormat:
        """Return the format of the decrypted audio."""

    @abc.abstractmethod
    def get_decrypted_size(self, stream: typing.BinaryIO) -> int:
        """Return the total plaintext length."""

    @abc.abstractmethod
    def decrypt_stream(
        self,
        input_stream: typing.BinaryIO,
        output_stream: typing.BinaryIO,
        offset: int = 0,
        length: int = -1,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        progress: "typing.Optional[ProgressCallback]" = None,
        cancel_event: "typing.Optional[threading.Event]" = None,
    ) -> int:
        """Write plaintext `[offset, offset + length)` to `output_stream`."""

    @staticmethod
    def _check_request(output_stream, offset: int, buffer_size: int) -> None:
        streams.ensure_output(output_stream)
        if offset < 0:
            raise ValueError("offset must be non-negative")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")

    @staticmethod
    def _resolve_range(offset: int, length: int, total: int) -> int:
        if length < 0:
            length = total - offset
        if offset >= total:
            raise OutOfRangeError(f"offset {offset} is beyond the payload size {total}")
        if offset + length > total:
            raise OutOfRangeError(f"range {offset}+{length} exceeds the payload size {total}")
        return length

    @staticmethod
    def _pump(
        input_stream,
        output_stream,
        decrypt: "typing.Callable[[bytes, int], bytes]",
        offset: int,
        length: int,
        buffer_size: int,
        progress: "typing.Optional[ProgressCallback]",
        cancel_event: "typing.Optional[threading.Event]",
    ) -> int:
        written = 0
        position = offset
        while written < length:
            if cancel_event is not None and cancel_event.is_set():
                raise DecryptCancelledError(f"Cancelled after {written} of {length} bytes")
            chunk = input_stream.read(min(buffer_size, length - written))
            if not chunk:
                break
            output_stream.write(decrypt(chunk, position))
            position += len(chunk)
            written += len(chunk)
            if progress is not None:
                progress(written, length)
        return written


class NCMKeyBox:
    """256-entry RC4-like key box; the keystream depends only on the byte index."""

    def __init__(self, key: bytes):
        if not key:
            raise InvalidKeyError("NCM key material is empty")
        box = list(range(256))
        last = 0
        key_len = len(key)
        for i in range(256):
            c = (box[i] + last + key[i % key_len]) & 0xFF
            box[i], box[c] = box[c], box[i]
            last = c
        self._box = bytes(box)
        self._keystream = np.frombuffer(
            bytes(box[(box[j] + box[(box[j] + j) & 0xFF]) & 0xFF] for j in range(256)),
            dtype=np.uint8,
        )

    @property
    def box(self) -> bytes:
        return self._box

    def decrypt(self, data: bytes, offset: int) -> bytes:
        buf = bytearray(data)
        if buf:
            arr = np.frombuffer(memoryview(buf), dtype=np.uint8)
            index = (np.arange(offset, offset + arr.size, dtype=np.int64) + 1) & 0xFF
            np.bitwise_xor(arr, self._keystream[index], out=arr)
        return bytes(buf)


class _NCMLayout(typing.NamedTuple):
    key_chunk: bytes
    meta_chunk: bytes
    image: bytes
    payload_offset: int
    payload_size: int


class NCMDecrypter(Decrypter):
    name = "ncm"
    MAGIC = b"CTENFDAM"
    HEADER_GAP = 2
    CRC_GAP = 9
    CORE_KEY = bytes.fromhex("687A4852416D736F356B496E62617857")
    META_KEY = bytes.fromhex("2331346C6A6B5F215C5D2630553C2728")
    KEY_XOR = 0x64
    META_XOR = 0x63
    KEY_PREFIX_LEN = len(b"neteasecloudmusic")
    META_PREFIX_LEN = len(b"music:")
    MIN_COVER_SIZE = 10
    FORMAT_PATTERN = re.compile(r'"format":"(\w+)"')

    @staticmethod
    def _aes_ecb_decrypt(data: bytes, key: bytes) -> bytes:
        decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    def check_support(self, stream: typing.BinaryIO) -> None:
        streams.ensure_input(stream)
        if streams.stream_length(stream) < len(self.MAGIC):
            raise FormatMismatchError("Stream is too short to be an NCM file")
        stream.seek(0, os.SEEK_SET)
        if stream.read(len(self.MAGIC)) != self.MAGIC:
            raise FormatMismatchError("Not an NCM file")

    def _read_layout(self, stream) -> _NCMLayout:
        streams.ensure_input(stream)
        stream.seek(len(self.MAGIC) + self.HEADER_GAP, os.SEEK_SET)
        key_chunk = streams.read_chunk(stream)
        meta_chunk = streams.read_chunk(stream)
        streams.skip(stream, self.CRC_GAP)
        image = streams.read_chunk(stream)
        payload_offset = stream.tell()
        payload_size = streams.stream_length(stream) - payload_offset
        if payload_size < 0:
            raise FormatMismatchError("NCM header runs past the end of the stream")
        return _NCMLayout(key_chunk, meta_chunk, image, payload_offset, payload_size)

    def _key_box(self, key_chunk: bytes) -> NCMKeyBox:
        masked = bytes(b ^ self.KEY_XOR for b in key_chunk)
        try:
            key = self._aes_ecb_decrypt(masked, self.CORE_KEY)
        except ValueError as exc:
            raise InvalidKeyError(f"NCM key chunk is corrupt: {exc}") from exc
        return NCMKeyBox(key[self.KEY_PREFIX_LEN:])

    def read_metadata(self, stream: typing.BinaryIO) -> str:
        """Return the decrypted metadata JSON text."""
        meta_chunk = self._read_layout(stream).meta_chunk
        if not meta_chunk:
            raise UnsupportedMetadataError("NCM file carries no metadata")
        masked = bytes(b ^ self.META_XOR for b in meta_chunk)
        colon = masked.find(b":")
        encoded = masked[colon + 1:] if colon >= 0 else masked
        try:
            decoded = base64.b64decode(encoded, validate=False)
            plain = self._aes_ecb_decrypt(decoded, self.META_KEY)
        except (binascii.Error, ValueError) as exc:
            raise UnsupportedMetadataError(f"NCM metadata is unreadable: {exc}") from exc
        return plain[self.META_PREFIX_LEN:].decode("utf-8", errors="replace")

    def read_metadata_dict(self, stream: typing.BinaryIO) -> "typing.Dict[str, typing.Any]":
        text = self.read_metadata(stream)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise UnsupportedMetadataError(f"NCM metadata is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise UnsupportedMetadataError("NCM metadata is not a JSON object")
        return data

    def detect_audio_format(self, stream: typing.BinaryIO) -> AudioFormat:
        match = self.FORMAT_PATTERN.search(self.read_metadata(stream))
        if match is None:
            raise UnsupportedMetadataError("NCM metadata does not name a media format")
        audio_format = AudioFormat.from_name(match.group(1))
        if audio_format is None:
            raise UnsupportedAudioFormatError(f"Unsupported audio format: {match.group(1)}")
        return audio_format

    def get_decrypted_size(self, stream: typing.BinaryIO) -> int:
        return self._read_layout(stream).payload_size

    def read_cover(self, stream: typing.BinaryIO) -> "typing.Optional[bytes]":
        image = self._read_layout(stream).image
        if len(image) <= self.MIN_COVER_SIZE:
            return None
        return image

    def decrypt_stream(
        self,
        input_stream: typing.BinaryIO,
        output_stream: typing.BinaryIO,
        offset: int = 0,
        length: int = -1,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        progress: "typing.Optional[ProgressCallback]" = None,
        cancel_event: "typing.Optional[threading.Event]" = None,
    ) -> int:
        self._check_request(output_stream, offset, buffer_size)
        self.check_support(input_stream)
        layout = self._read_layout(input_stream)
        key_box = self._key_box(layout.key_chunk)
        length = self._resolve_range(offset, length, layout.payload_size)
        input_stream.seek(layout.payload_offset + offset, os.SEEK_SET)
        return self._pump(
            input_stream, output_stream, key_box.decrypt,
            offset, length, buffer_size, progress, cancel_event,
        )

    def patch_cover_image(self, stream: typing.BinaryIO, dest_path: "typing.Union[str, os.PathLike]") -> bool:
        """
        Embed the container's cover art into an already decrypted file.

        Returns True when a picture was written. Containers without a picture
        tag (OGG, WAV, WMA, AAC) are left untouched.
        """
        cover = self.read_cover(stream)
        if cover is None:
            return False
        audio_format = self.detect_audio_format(stream)
        mime = AudioUtils.get_image_mime_type(cover)
        path = str(dest_path)
        if audio_format is AudioFormat.MP3:
            try:
                tags = ID3(path)
            except ID3NoHeaderError:
                tags = ID3()
            tags.delall("APIC")
            tags.add(APIC(encoding=3, mime=mime, type=3, desc="Cover", data=cover))
            tags.save(path)
            return True
        if audio_format is AudioFormat.FLAC:
            audio = FLAC(path)
            pic = Picture()
            pic.data = cover
            pic.type = 3
            pic.mime = mime
            audio.clear_pictures()
            audio.add_picture(pic)
            audio.save()
            return True
        if audio_format is AudioFormat.M4A:
            audio = MP4(path)
            if audio.tags is None:
                audio.add_tags()
            image_format = MP4Cover.FORMAT_PNG if mime == "image/png" else MP4Cover.FORMAT_JPEG
            audio.tags["covr"] = [MP4Cover(cover, imageformat=image_format)]
            audio.save()
            return True
        print(f"⚠️  Cover art is not supported for {audio_format.value} output: {pathlib.Path(path).name}")
        return False


class KGGDecrypter(Decrypter):
    name = "kgg"
    HEADER_LEN_OFFSET = 16
    MODE_OFFSET = 20
    KEY_ID_OFFSET = 68
    SUPPORTED_MODE = 5

    def __init__(self, key_table: "typing.Optional[KeyTable]" = None):
        self._key_table: KeyTable = key_table if key_table is not None else {}

    @property
    def key_table(self) -> KeyTable:
        return self._key_table

    def load_key_table(self, db_path: "typing.Union[str, os.PathLike]") -> KeyTable:
        """Decode the key database at `db_path` and keep its key table."""
        self._key_table = KGDatabase(db_path).read_key_map()
        return self._key_table

    def check_support(self, stream: typing.BinaryIO) -> None:
        streams.ensure_input(stream)
        stream.seek(self.MODE_OFFSET, os.SEEK_SET)
        try:
            mode = streams.read_uint32(stream)
        except StreamIOError as exc:
            raise FormatMismatchError("Stream is too short to be a KGG file") from exc
        if mode != self.SUPPORTED_MODE:
            raise FormatMismatchError("Not a KGG file")

    def _header_len(self, stream) -> int:
        stream.seek(self.HEADER_LEN_OFFSET, os.SEEK_SET)
        try:
            return streams.read_uint32(stream)
        except StreamIOError as exc:
            raise FormatMismatchError("Stream is too short to be a KGG file") from exc

    def read_key_id(self, stream: typing.BinaryIO) -> str:
        streams.ensure_input(stream)
        stream.seek(self.KEY_ID_OFFSET, os.SEEK_SET)
        return streams.read_chunk(stream).decode("utf-8", errors="replace")

    def get_decrypted_size(self, stream: typing.BinaryIO) -> int:
        streams.ensure_input(stream)
        header_len = self._header_len(stream)
        size = streams.stream_length(stream) - header_len
        if size < 0:
            raise FormatMismatchError("KGG header length exceeds the stream size")
        return size

    def detect_audio_format(self, stream: typing.BinaryIO) -> AudioFormat:
        total = self.get_decrypted_size(stream)
        if total == 0:
            raise UnsupportedAudioFormatError("KGG payload is empty")
        sniff = io.BytesIO()
        self.decrypt_stream(stream, sniff, length=min(AudioUtils.SNIFF_LENGTH, total))
        audio_format = AudioUtils.get_audio_format(sniff.getvalue())
        if audio_format is None:
            raise UnsupportedAudioFormatError("Decrypted KGG payload is not a known audio format")
        return audio_format

    def decrypt_stream(
        self,
        input_stream: typing.BinaryIO,
        output_stream: typing.BinaryIO,
        offset: int = 0,
        length: int = -1,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        progress: "typing.Optional[ProgressCallback]" = None,
        cancel_event: "typing.Optional[threading.Event]" = None,
    ) -> int:
        self._check_request(output_stream, offset, buffer_size)
        self.check_support(input_stream)
        header_len = self._header_len(input_stream)
        key_id = self.read_key_id(input_stream)
        secret = self._key_table.get(key_id)
        if secret is None:
            raise KeyNotFoundError(key_id)
        cipher = Qmc2Factory.create(secret)
        total = self.get_decrypted_size(input_stream)
        length = self._resolve_range(offset, length, total)
        input_stream.seek(header_len + offset, os.SEEK_SET)
        return self._pump(
            input_stream, output_stream, cipher.decrypt,
            offset, length, buffer_size, progress, cancel_event,
        )


__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "Decrypter",
    "KGGDecrypter",
    "NCMDecrypter",
    "NCMKeyBox",
    "ProgressCallback",
]
