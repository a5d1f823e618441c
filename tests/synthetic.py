"""
Independent encryptors used to build test containers.

Nothing here imports musicdecrypt: every vector is produced from the format
description so the decoders are checked against data they did not produce.
"""

import base64
import hashlib
import json
import sqlite3
import struct
from pathlib import Path

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

MASK32 = 0xFFFFFFFF
TEA_DELTA = 0x9E3779B9
U32 = struct.Struct("<I")

NCM_CORE_KEY = bytes.fromhex("687A4852416D736F356B496E62617857")
NCM_META_KEY = bytes.fromhex("2331346C6A6B5F215C5D2630553C2728")
KGDB_MASTER_KEY = bytes.fromhex("1D613145B247BF7F3D189672144FE4BF")
SQLITE_HEADER = b"SQLite format 3\x00"


# -- TEA ---------------------------------------------------------------

def tea_encrypt_block(value: int, key) -> int:
    y = (value >> 32) & MASK32
    z = value & MASK32
    total = 0
    for _ in range(16):
        total = (total + TEA_DELTA) & MASK32
        y = (y + ((((z << 4) + key[0]) & MASK32) ^ ((z + total) & MASK32) ^ (((z >> 5) + key[1]) & MASK32))) & MASK32
        z = (z + ((((y << 4) + key[2]) & MASK32) ^ ((y + total) & MASK32) ^ (((y >> 5) + key[3]) & MASK32))) & MASK32
    return (y << 32) | z


def tea_cbc_encrypt_raw(framed: bytes, key) -> bytes:
    """Chain already-framed plaintext (length must be a multiple of 8)."""
    assert len(framed) % 8 == 0
    out = bytearray()
    prev_cipher = 0
    prev_mix = 0
    for pos in range(0, len(framed), 8):
        plain = int.from_bytes(framed[pos:pos + 8], "big")
        mix = plain ^ prev_cipher
        cipher = tea_encrypt_block(mix, key) ^ prev_mix
        out += cipher.to_bytes(8, "big")
        prev_cipher, prev_mix = cipher, mix
    return bytes(out)


def tea_cbc_encrypt(plain: bytes, key) -> bytes:
    """Frame as [pad-len byte][pad][2 salt][plain][7 zero] and chain."""
    pad_len = (8 - (len(plain) + 10) % 8) % 8
    framed = bytes([0xA8 | pad_len]) + b"\x5A" * pad_len + b"\x13\x37" + plain + b"\x00" * 7
    return tea_cbc_encrypt_raw(framed, key)


def tea_key(key_bytes: bytes):
    return struct.unpack("<4I", key_bytes)


def ekey_v1_encode(raw_key: bytes) -> str:
    assert len(raw_key) > 8
    header = raw_key[:8]
    key = (
        0x69005600 | (header[0] << 16) | header[1],
        0x46003800 | (header[2] << 16) | header[3],
        0x2B002000 | (header[4] << 16) | header[5],
        0x15000B00 | (header[6] << 16) | header[7],
    )
    return base64.b64encode(header + tea_cbc_encrypt(raw_key[8:], key)).decode("ascii")


EKEY_V2_KEY1 = bytes.fromhex("3338365A4A592140232A24255E262928")
EKEY_V2_KEY2 = bytes.fromhex("2A2A232128232425265E6131635A2C54")


def ekey_v2_layers(text: bytes) -> bytes:
    """Wrap with key2 first and key1 outermost, the reverse of unwrapping."""
    inner = tea_cbc_encrypt(text, tea_key(EKEY_V2_KEY2))
    return tea_cbc_encrypt(inner, tea_key(EKEY_V2_KEY1))


def sample_key(length: int, seed: int = 7) -> bytes:
    return bytes(((i * 131 + seed * 17) % 255) + 1 for i in range(length))


# -- QMC2 reference ciphers -------------------------------------------

def map_table(key: bytes) -> bytes:
    n = len(key)
    table = bytearray(128)
    for i in range(128):
        j = (i * i + 71214) % n
        shift = (j + 4) % 8
        table[i] = ((key[j] << shift) | (key[j] >> shift)) & 0xFF
    return bytes(table)


def map_xor(data: bytes, key: bytes, offset: int = 0) -> bytes:
    table = map_table(key)
    out = bytearray(data)
    for i in range(len(out)):
        o = offset + i
        idx = o if o <= 0x7FFF else o % 0x7FFF
        out[i] ^= table[idx % 128]
    return bytes(out)


def rc4_xor(data: bytes, key: bytes, offset: int = 0) -> bytes:
    """Byte-at-a-time reference for the RC4-derived payload cipher."""
    n = len(key)
    state = [i & 0xFF for i in range(n)]
    j = 0
    for i in range(n):
        j = (j + state[i] + key[i]) % n
        state[i], state[j] = state[j], state[i]
    stream = bytearray(5120 + 512)
    i = j = 0
    for k in range(len(stream)):
        i = (i + 1) % n
        j = (j + state[i]) % n
        state[i], state[j] = state[j], state[i]
        stream[k] ^= state[(state[i] + state[j]) % n]

    h = 1
    for b in key:
        if b == 0:
            continue
        nxt = (h * b) & MASK32
        if nxt <= h:
            break
        h = nxt

    def seg_key(seg_id, seed):
        if seed == 0:
            return 0
        return int(float(h) / (seed * (seg_id + 1.0)) * 100.0)

    out = bytearray(data)
    for idx in range(len(out)):
        o = offset + idx
        if o < 128:
            out[idx] ^= key[seg_key(o, key[o % n]) % n]
        else:
            seg, pos = divmod(o, 5120)
            skip = seg_key(seg, key[seg % n]) & 0x1FF
            out[idx] ^= stream[skip + pos]
    return bytes(out)


# -- NCM ---------------------------------------------------------------

def aes_ecb_pkcs7(data: bytes, key: bytes) -> bytes:
    padder = padding.PKCS7(128).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def ncm_keystream(key: bytes) -> bytes:
    box = list(range(256))
    last = 0
    for i in range(256):
        c = (box[i] + last + key[i % len(key)]) & 0xFF
        box[i], box[c] = box[c], box[i]
        last = c
    return bytes(box[(box[j] + box[(box[j] + j) & 0xFF]) & 0xFF] for j in range(256))


def ncm_xor(data: bytes, key: bytes, offset: int = 0) -> bytes:
    stream = ncm_keystream(key)
    return bytes(b ^ stream[(offset + i + 1) & 0xFF] for i, b in enumerate(data))


def build_ncm(audio: bytes, key: bytes, meta: dict | None = None, cover: bytes = b"", raw_meta: bytes | None = None) -> bytes:
    key_chunk = bytes(b ^ 0x64 for b in aes_ecb_pkcs7(b"neteasecloudmusic" + key, NCM_CORE_KEY))
    if raw_meta is None:
        meta_json = json.dumps(meta or {"format": "mp3"}, separators=(",", ":")).encode("utf-8")
        raw_meta = b"163 key(Don't modify):" + base64.b64encode(aes_ecb_pkcs7(b"music:" + meta_json, NCM_META_KEY))
    meta_chunk = bytes(b ^ 0x63 for b in raw_meta)
    return b"".join([
        b"CTENFDAM",
        b"\x01\x70",
        U32.pack(len(key_chunk)), key_chunk,
        U32.pack(len(meta_chunk)), meta_chunk,
        b"\xAA\xBB\xCC\xDD\x00\x00\x00\x00\x00",
        U32.pack(len(cover)), cover,
        ncm_xor(audio, key),
    ])


# -- KGG ---------------------------------------------------------------

def build_kgg(audio: bytes, key_id: str, raw_key: bytes, header_len: int = 1024) -> bytes:
    id_bytes = key_id.encode("utf-8")
    header = bytearray(header_len)
    header[:16] = b"\x7C\xD5\x32\xEB\x86\x02\x7F\x4B\xA8\xAF\xA6\x8E\x0F\xFF\x99\x14"
    header[16:20] = U32.pack(header_len)
    header[20:24] = U32.pack(5)
    header[68:72] = U32.pack(len(id_bytes))
    header[72:72 + len(id_bytes)] = id_bytes
    if len(raw_key) < 300:
        body = map_xor(audio, raw_key)
    else:
        body = rc4_xor(audio, raw_key)
    return bytes(header) + body


# -- key database -------------------------------------------------------

def create_key_db(path: Path, rows) -> bytes:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA page_size=1024")
        conn.execute("CREATE TABLE ShareFileItems (Id INTEGER PRIMARY KEY, EncryptionKeyId TEXT, EncryptionKey TEXT)")
        conn.executemany("INSERT INTO ShareFileItems (EncryptionKeyId, EncryptionKey) VALUES (?, ?)", rows)
        conn.commit()
    finally:
        conn.close()
    return path.read_bytes()


def kgdb_page_key(page_no: int):
    key = hashlib.md5(KGDB_MASTER_KEY + U32.pack(page_no) + U32.pack(0x546C4173)).digest()
    ebx = page_no + 1
    source = bytearray()
    for _ in range(4):
        q = ebx // 0xCE26
        ecx = (0x9EF4 * ebx - 0x7FFFFF07 * q) & MASK32
        if ecx & 0x80000000:
            ecx = (ecx + 0x7FFFFF07) & MASK32
        ebx = ecx
        source += U32.pack(ebx)
    return key, hashlib.md5(bytes(source)).digest()


def _aes_cbc(data: bytes, key: bytes, iv: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def encrypt_key_db(image: bytes) -> bytes:
    """Page-encrypt a plain SQLite image the way the client stores it."""
    assert len(image) % 1024 == 0 and image.startswith(SQLITE_HEADER)
    out = bytearray()
    key, iv = kgdb_page_key(1)
    cipher = _aes_cbc(image[16:1024], key, iv)
    page1 = bytearray(1024)
    page1[0:8] = b"KGDBTEST"
    page1[8:16] = cipher[0:8]
    page1[16:24] = image[16:24]
    page1[24:1024] = cipher[8:]
    out += page1
    for page_no in range(2, len(image) // 1024 + 1):
        start = (page_no - 1) * 1024
        key, iv = kgdb_page_key(page_no)
        out += _aes_cbc(image[start:start + 1024], key, iv)
    return bytes(out)
