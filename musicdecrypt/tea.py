"""16-round TEA with the Tencent-style CBC framing used by QMC2 ekeys."""

import struct
import typing


class Tea:
    ROUNDS = 16
    DELTA = 0x9E3779B9
    MASK32 = 0xFFFFFFFF
    EXPECTED_SUM = (ROUNDS * DELTA) & MASK32
    BLOCK_SIZE = 8
    FIXED_SALT_LEN = 2
    ZERO_PAD_LEN = 7
    _BLOCK = struct.Struct(">Q")
    _KEY = struct.Struct("<4I")

    @staticmethod
    def key_from_bytes(key_bytes: bytes) -> "typing.Tuple[int, int, int, int]":
        """Interpret 16 key bytes as four little-endian 32-bit words."""
        if len(key_bytes) != 16:
            raise ValueError("TEA key must be 16 bytes")
        return Tea._KEY.unpack(bytes(key_bytes))

    @staticmethod
    def _single_round(value: int, total: int, k1: int, k2: int) -> int:
        mask = Tea.MASK32
        return (((value << 4) + k1) & mask) ^ ((value + total) & mask) ^ (((value >> 5) + k2) & mask)

    @staticmethod
    def ecb_decrypt(value: int, key: "typing.Sequence[int]") -> int:
        mask = Tea.MASK32
        y = (value >> 32) & mask
        z = value & mask
        total = Tea.EXPECTED_SUM
        for _ in range(Tea.ROUNDS):
            z = (z - Tea._single_round(y, total, key[2], key[3])) & mask
            y = (y - Tea._single_round(z, total, key[0], key[1])) & mask
            total = (total - Tea.DELTA) & mask
        return (y << 32) | z

    @staticmethod
    def _chain_blocks(cipher: bytes, key: "typing.Sequence[int]") -> "typing.Iterator[bytes]":
        iv1 = 0
        iv2 = 0
        for (block,) in Tea._BLOCK.iter_unpack(cipher):
            iv2_next = Tea.ecb_decrypt(block ^ iv2, key)
            yield Tea._BLOCK.pack(iv2_next ^ iv1)
            iv1, iv2 = block, iv2_next

    @staticmethod
    def cbc_decrypt(cipher: bytes, key: "typing.Sequence[int]") -> bytes:
        """
        Decrypt a framed TEA-CBC buffer.

        Returns b"" for input that is not block aligned, shorter than two
        blocks, or whose header leaves no plaintext. The trailing zero padding
        is dropped without validation.
        """
        data = bytes(cipher)
        block = Tea.BLOCK_SIZE
        if len(data) % block != 0 or len(data) < block * 2:
            return b""

        blocks = Tea._chain_blocks(data, key)
        header = next(blocks) + next(blocks)
        skip_len = 1 + (header[0] & 7) + Tea.FIXED_SALT_LEN
        plain_len = len(data) - skip_len - Tea.ZERO_PAD_LEN
        if plain_len <= 0:
            return b""

        out = bytearray(header[skip_len:skip_len + plain_len])
        tail_blocks = len(data) // block - 3
        for _ in range(tail_blocks):
            if len(out) >= plain_len:
                break
            out += next(blocks)[:plain_len - len(out)]
        if len(out) < plain_len:
            # the last owed byte is the first byte of the final block
            out += next(blocks)[:1]
        return bytes(out)


__all__ = ["Tea"]
