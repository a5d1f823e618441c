"""Audio format sniffing and MIME helpers."""

import enum
import pathlib
import typing
from io import BytesIO

from PIL import Image, UnidentifiedImageError


class AudioFormat(enum.Enum):
    FLAC = "flac"
    MP3 = "mp3"
    OGG = "ogg"
    M4A = "m4a"
    WAV = "wav"
    WMA = "wma"
    AAC = "aac"

    @property
    def extension(self) -> str:
        return "." + self.value

    @property
    def mime_type(self) -> str:
        return AudioUtils.MIME_TYPES[self]

    @classmethod
    def from_name(cls, name: str) -> "typing.Optional[AudioFormat]":
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


class AudioUtils:
    # (offset, magic); every entry is disjoint from the others
    HEADERS: "typing.Dict[AudioFormat, typing.Tuple[int, bytes]]" = {
        AudioFormat.FLAC: (0, b"fLaC"),
        AudioFormat.MP3: (0, b"ID3"),
        AudioFormat.OGG: (0, b"OggS"),
        AudioFormat.M4A: (4, b"ftyp"),
        AudioFormat.WAV: (0, b"RIFF"),
        AudioFormat.WMA: (0, b"\x30\x26\xB2\x75"),
        AudioFormat.AAC: (0, b"\xFF\xF1\x50"),
    }
    SNIFF_LENGTH = 8
    MIME_TYPES: "typing.Dict[AudioFormat, str]" = {
        AudioFormat.FLAC: "audio/flac",
        AudioFormat.MP3: "audio/mpeg",
        AudioFormat.OGG: "audio/ogg",
        AudioFormat.M4A: "audio/mp4",
        AudioFormat.WAV: "audio/wav",
        AudioFormat.WMA: "audio/x-ms-wma",
        AudioFormat.AAC: "audio/aac",
    }
    DEFAULT_MIME = "application/octet-stream"
    DEFAULT_IMAGE_MIME = "image/jpeg"

    @staticmethod
    def get_audio_format(data: bytes) -> "typing.Optional[AudioFormat]":
        """Match the leading bytes of decrypted audio against the magic table."""
        for audio_format, (offset, magic) in AudioUtils.HEADERS.items():
            if data[offset:offset + len(magic)] == magic:
                return audio_format
        return None

    @staticmethod
    def get_mime_type(file_name: "typing.Union[str, pathlib.Path]") -> str:
        ext = pathlib.PurePath(str(file_name)).suffix.lower()
        audio_format = AudioFormat.from_name(ext.lstrip(".")) if ext else None
        if audio_format is None:
            return AudioUtils.DEFAULT_MIME
        return AudioUtils.MIME_TYPES[audio_format]

    @staticmethod
    def get_image_mime_type(data: bytes) -> str:
        # unidentified covers are tagged as JPEG
        try:
            with Image.open(BytesIO(data)) as image:
                fmt = image.format
        except (UnidentifiedImageError, OSError, ValueError):
            return AudioUtils.DEFAULT_IMAGE_MIME
        return Image.MIME.get(fmt or "", AudioUtils.DEFAULT_IMAGE_MIME)


__all__ = ["AudioFormat", "AudioUtils"]
