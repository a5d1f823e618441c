"""
Decoder for the page-encrypted SQLite key database (KGMusicV3.db).

Every 1024-byte page is AES-128-CBC encrypted with a key and IV derived from
its page number. Page 1 additionally hides the first 16 bytes of the SQLite
header; they are rebuilt and the result is self-checked against a backup of
bytes 16..24.
"""

import hashlib
import os
import pathlib
import sqlite3
import struct
import tempfile
import types
import typing

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DatabaseIntegrityError, UnsupportedDatabaseError

KeyTable = typing.Mapping[str, str]


class KGDatabase:
    PAGE_SIZE = 1024
    SQLITE_HEADER = b"SQLite format 3\x00"
    MASTER_KEY = bytes.fromhex("1D613145B247BF7F3D189672144FE4BF")
    PAGE_KEY_MAGIC = 0x546C4173
    PAGE1_MAGIC = 0x20204000
    IV_DIVISOR = 0xCE26
    IV_MULTIPLIER = 0x9EF4
    IV_MODULUS = 0x7FFFFF07
    KEY_QUERY = (
        "SELECT EncryptionKeyId, EncryptionKey FROM ShareFileItems "
        "WHERE EncryptionKeyId IS NOT NULL AND EncryptionKeyId != '' "
        "AND EncryptionKey IS NOT NULL AND EncryptionKey != ''"
    )
    _U32 = struct.Struct("<I")

    def __init__(self, db_path: "typing.Union[str, os.PathLike]"):
        path = pathlib.Path(db_path)
        if not path.is_file():
            raise FileNotFoundError(f"Key database not found: {path}")
        self.path = path
        self._image = self.decode(path.read_bytes())

    @property
    def decrypted_bytes(self) -> bytes:
        return self._image

    @staticmethod
    def derive_page_key(page_no: int) -> "typing.Tuple[bytes, bytes]":
        """Return the (key, iv) pair for a 1-based page number."""
        mask = 0xFFFFFFFF
        seed = KGDatabase.MASTER_KEY + KGDatabase._U32.pack(page_no & mask) + KGDatabase._U32.pack(KGDatabase.PAGE_KEY_MAGIC)
        key = hashlib.md5(seed).digest()

        ebx = (page_no + 1) & mask
        iv_source = bytearray()
        for _ in range(4):
            quotient = ebx // KGDatabase.IV_DIVISOR
            ecx = (KGDatabase.IV_MULTIPLIER * ebx - KGDatabase.IV_MODULUS * quotient) & mask
            if ecx & 0x80000000:
                ecx = (ecx + KGDatabase.IV_MODULUS) & mask
            ebx = ecx
            iv_source += KGDatabase._U32.pack(ebx)
        iv = hashlib.md5(bytes(iv_source)).digest()
        return key, iv

    @staticmethod
    def is_valid_page1_header(page: bytes) -> bool:
        mask = 0xFFFFFFFF
        o10 = KGDatabase._U32.unpack_from(page, 16)[0]
        o14 = KGDatabase._U32.unpack_from(page, 20)[0]
        v6 = (((o10 & 0xFF) << 8) | ((o10 & 0xFF00) << 16)) & mask
        return (
            o14 == KGDatabase.PAGE1_MAGIC
            and ((v6 - 0x200) & mask) <= 0xFE00
            and (v6 & ((v6 - 1) & mask)) == 0
        )

    @staticmethod
    def _aes_cbc_decrypt(data: bytes, key: bytes, iv: bytes) -> bytes:
        if len(data) % 16 != 0:
            raise UnsupportedDatabaseError(f"Ciphertext length {len(data)} is not a multiple of 16")
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        return decryptor.update(data) + decryptor.finalize()

    @staticmethod
    def decode(data: bytes) -> bytes:
        """Decrypt a whole database image; plain SQLite images pass through."""
        size = len(data)
        page_size = KGDatabase.PAGE_SIZE
        if size == 0 or size % page_size != 0:
            raise UnsupportedDatabaseError(f"Database size {size} is not a multiple of {page_size}")
        if data.startswith(KGDatabase.SQLITE_HEADER):
            return bytes(data)

        page1 = bytearray(data[:page_size])
        if not KGDatabase.is_valid_page1_header(page1):
            raise UnsupportedDatabaseError("Unrecognised key database page 1 header")

        out = bytearray(size)
        key, iv = KGDatabase.derive_page_key(1)
        backup = bytes(page1[16:24])
        page1[16:24] = page1[8:16]
        plain = KGDatabase._aes_cbc_decrypt(bytes(page1[16:]), key, iv)
        if plain[:8] != backup:
            raise DatabaseIntegrityError("Key database page 1 failed its integrity check")
        header_len = len(KGDatabase.SQLITE_HEADER)
        out[:header_len] = KGDatabase.SQLITE_HEADER
        out[header_len:page_size] = plain

        for page_no in range(2, size // page_size + 1):
            start = (page_no - 1) * page_size
            key, iv = KGDatabase.derive_page_key(page_no)
            out[start:start + page_size] = KGDatabase._aes_cbc_decrypt(data[start:start + page_size], key, iv)
        return bytes(out)

    @staticmethod
    def query_key_map(image: bytes) -> KeyTable:
        """Run the key query against a decoded image and freeze the result."""
        keys: "typing.Dict[str, str]" = {}
        with tempfile.NamedTemporaryFile('w+b', suffix=".sqlite", delete=False) as tmp:
            temp_path = tmp.name
        try:
            with open(temp_path, "wb") as handle:
                handle.write(image)
            conn = sqlite3.connect(pathlib.Path(temp_path).as_uri() + "?mode=ro", uri=True)
            try:
                for key_id, ekey in conn.execute(KGDatabase.KEY_QUERY):
                    if not isinstance(key_id, str) or not key_id.strip():
                        continue
                    keys[key_id] = str(ekey)
            finally:
                conn.close()
        except sqlite3.DatabaseError as exc:
            raise UnsupportedDatabaseError(f"Key database query failed: {exc}") from exc
        finally:
            try:
                os.remove(temp_path)
            except OSError:
                # best-effort cleanup
                pass
        return types.MappingProxyType(keys)

    def read_key_map(self) -> KeyTable:
        return self.query_key_map(self._image)

    def dump(self, output_path: "typing.Union[str, os.PathLike]") -> pathlib.Path:
        """Write the decrypted image to `output_path` as a plain SQLite file."""
        target = pathlib.Path(output_path)
        if target.parent and not target.parent.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self._image)
        return target


__all__ = ["KGDatabase", "KeyTable"]
