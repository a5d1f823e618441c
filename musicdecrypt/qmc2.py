"""QMC2 payload ciphers (Map and RC4-derived) and the ekey-driven factory."""

import abc

import numpy as np

from .ekey import Ekey
from .errors import InvalidKeyError


class Rc4Variant:
    """RC4 whose state length equals the key length instead of 256."""

    def __init__(self, key: bytes):
        if not key:
            raise InvalidKeyError("RC4 key must not be empty")
        n = len(key)
        state = [i & 0xFF for i in range(n)]
        j = 0
        for i in range(n):
            j = (j + state[i] + key[i]) % n
            state[i], state[j] = state[j], state[i]
        self._state = state
        self._n = n
        self._i = 0
        self._j = 0

    def derive(self, buffer: bytearray) -> None:
        """XOR the next keystream bytes into `buffer` in place."""
        s = self._state
        n = self._n
        i = self._i
        j = self._j
        for k in range(len(buffer)):
            i = (i + 1) % n
            j = (j + s[i]) % n
            s[i], s[j] = s[j], s[i]
            buffer[k] ^= s[(s[i] + s[j]) % n]
        self._i = i
        self._j = j


class Qmc2Base(abc.ABC):
    """Position-pure payload cipher: any absolute window decrypts on its own."""

    @abc.abstractmethod
    def _apply(self, arr: "np.ndarray", offset: int) -> None:
        raise NotImplementedError

    def decrypt(self, data: bytes, offset: int) -> bytes:
        if offset < 0:
            raise ValueError("offset must be non-negative")
        buf = bytearray(data)
        if buf:
            self._apply(np.frombuffer(memoryview(buf), dtype=np.uint8), offset)
        return bytes(buf)


class Qmc2Map(Qmc2Base):
    OFFSET_BOUNDARY = 0x7FFF
    INDEX_OFFSET = 71214
    KEY_SIZE = 128

    def __init__(self, key: bytes):
        if not key:
            raise InvalidKeyError("Map key must not be empty")
        n = len(key)
        table = bytearray(self.KEY_SIZE)
        for i in range(self.KEY_SIZE):
            j = (i * i + self.INDEX_OFFSET) % n
            shift = (j + 4) % 8
            table[i] = ((key[j] << shift) | (key[j] >> shift)) & 0xFF
        self._table = np.frombuffer(bytes(table), dtype=np.uint8)

    def _apply(self, arr: "np.ndarray", offset: int) -> None:
        positions = np.arange(offset, offset + arr.size, dtype=np.int64)
        folded = np.where(positions <= self.OFFSET_BOUNDARY, positions, positions % self.OFFSET_BOUNDARY)
        np.bitwise_xor(arr, self._table[folded % self.KEY_SIZE], out=arr)


class Qmc2RC4(Qmc2Base):
    FIRST_SEGMENT_SIZE = 0x80
    OTHER_SEGMENT_SIZE = 0x1400
    STREAM_SIZE = OTHER_SEGMENT_SIZE + 512

    def __init__(self, key: bytes):
        if not key:
            raise InvalidKeyError("RC4 key must not be empty")
        self._key = bytes(key)
        self._hash = self.compute_hash(self._key)
        stream = bytearray(self.STREAM_SIZE)
        Rc4Variant(self._key).derive(stream)
        self._stream = np.frombuffer(bytes(stream), dtype=np.uint8)
        n = len(self._key)
        self._first_segment = np.frombuffer(
            bytes(
                self._key[self.segment_key(self._hash, o, self._key[o % n]) % n]
                for o in range(self.FIRST_SEGMENT_SIZE)
            ),
            dtype=np.uint8,
        )

    @staticmethod
    def compute_hash(key: bytes) -> float:
        h = 1
        for b in key:
            if b == 0:
                continue
            nxt = (h * b) & 0xFFFFFFFF
            if nxt <= h:
                break
            h = nxt
        return float(h)

    @staticmethod
    def segment_key(key_hash: float, segment_id: int, seed: int) -> int:
        if seed == 0:
            return 0
        return int(key_hash / (seed * (segment_id + 1.0)) * 100.0)

    def _apply(self, arr: "np.ndarray", offset: int) -> None:
        done = 0
        total = arr.size
        if offset < self.FIRST_SEGMENT_SIZE:
            count = min(total, self.FIRST_SEGMENT_SIZE - offset)
            np.bitwise_xor(arr[:count], self._first_segment[offset:offset + count], out=arr[:count])
            done = count
        n = len(self._key)
        while done < total:
            position = offset + done
            segment, seg_pos = divmod(position, self.OTHER_SEGMENT_SIZE)
            skip_len = self.segment_key(self._hash, segment, self._key[segment % n]) & 0x1FF
            start = skip_len + seg_pos
            count = min(total - done, self.OTHER_SEGMENT_SIZE - seg_pos, self.STREAM_SIZE - start)
            if count <= 0:
                raise ValueError(f"keystream exhausted at offset {position}")
            window = arr[done:done + count]
            np.bitwise_xor(window, self._stream[start:start + count], out=window)
            done += count


class Qmc2Factory:
    MAP_KEY_LIMIT = 300

    @staticmethod
    def create_from_key(key: bytes) -> Qmc2Base:
        if not key:
            raise InvalidKeyError("Decrypted ekey is empty")
        if len(key) < Qmc2Factory.MAP_KEY_LIMIT:
            return Qmc2Map(key)
        return Qmc2RC4(key)

    @staticmethod
    def create(ekey: str) -> Qmc2Base:
        """Unwrap `ekey` and pick the Map or RC4 cipher by key length."""
        key = Ekey.decrypt(ekey)
        if not key:
            raise InvalidKeyError("Failed to unwrap ekey")
        return Qmc2Factory.create_from_key(key)


__all__ = ["Qmc2Base", "Qmc2Factory", "Qmc2Map", "Qmc2RC4", "Rc4Variant"]
