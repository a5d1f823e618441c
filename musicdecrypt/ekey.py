"""Unwrapping of QMC2 "ekey" strings into raw cipher key material."""

import base64
import binascii
import typing

from .tea import Tea


class Ekey:
    V2_PREFIX = "UVFNdXNpYyBFbmNWMixLZXk6"
    V2_KEY1 = bytes.fromhex("3338365A4A592140232A24255E262928")
    V2_KEY2 = bytes.fromhex("2A2A232128232425265E6131635A2C54")
    V1_HEADER_LEN = 8
    V1_KEY_SALTS = (0x69005600, 0x46003800, 0x2B002000, 0x15000B00)

    @staticmethod
    def decrypt(ekey: str) -> bytes:
        """Dispatch on the v2 prefix; anything else is treated as v1."""
        if ekey.startswith(Ekey.V2_PREFIX):
            return Ekey.decrypt_v2(ekey)
        return Ekey.decrypt_v1(ekey)

    @staticmethod
    def _v1_key(header: bytes) -> "typing.Tuple[int, int, int, int]":
        return tuple(
            salt | (header[2 * i] << 16) | header[2 * i + 1]
            for i, salt in enumerate(Ekey.V1_KEY_SALTS)
        )

    @staticmethod
    def decrypt_v1(ekey: str) -> bytes:
        try:
            decoded = base64.b64decode(ekey.strip(), validate=True)
        except (binascii.Error, ValueError):
            return b""
        if len(decoded) < Ekey.V1_HEADER_LEN:
            return b""
        header = decoded[:Ekey.V1_HEADER_LEN]
        plain = Tea.cbc_decrypt(decoded[Ekey.V1_HEADER_LEN:], Ekey._v1_key(header))
        if not plain:
            return b""
        return header + plain

    @staticmethod
    def unwrap_v2_layers(data: bytes) -> bytes:
        """Strip the two TEA-CBC layers: key1 first, then key2."""
        data = Tea.cbc_decrypt(data, Tea.key_from_bytes(Ekey.V2_KEY1))
        return Tea.cbc_decrypt(data, Tea.key_from_bytes(Ekey.V2_KEY2))

    @staticmethod
    def decrypt_v2(ekey: str) -> bytes:
        payload = ekey[len(Ekey.V2_PREFIX):] if ekey.startswith(Ekey.V2_PREFIX) else ekey
        data = Ekey.unwrap_v2_layers(payload.encode("ascii", errors="replace"))
        return Ekey.decrypt_v1(data.decode("latin-1"))


__all__ = ["Ekey"]
