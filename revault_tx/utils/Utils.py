import hashlib
import struct
from io import BytesIO
from typing import Union

from Crypto.Hash import RIPEMD160

from revault_tx.utils.Errors import TxDeserializationError


class Utils(object):

    @classmethod
    def sha256(cls, s: bytes) -> bytes:
        return hashlib.sha256(s).digest()

    @classmethod
    def sha256d(cls, s: Union[str, bytes]) -> bytes:
        """A double SHA-256 hash."""
        if not isinstance(s, bytes):
            s = s.encode()

        return hashlib.sha256(hashlib.sha256(s).digest()).digest()

    @classmethod
    def ripemd160(cls, s: bytes) -> bytes:
        return RIPEMD160.new(s).digest()

    @classmethod
    def hash160(cls, s: bytes) -> bytes:
        """RIPEMD160(SHA256(s)), used for public key hashes."""
        return cls.ripemd160(hashlib.sha256(s).digest())

    # ——————————————————compact size integers——————————————————

    @classmethod
    def ser_compact_size(cls, n: int) -> bytes:
        if n < 0:
            raise ValueError(f"Can't encode negative size {n}")
        if n < 0xfd:
            return struct.pack('<B', n)
        if n <= 0xffff:
            return b'\xfd' + struct.pack('<H', n)
        if n <= 0xffffffff:
            return b'\xfe' + struct.pack('<I', n)
        return b'\xff' + struct.pack('<Q', n)

    @classmethod
    def ser_string(cls, s: bytes) -> bytes:
        return cls.ser_compact_size(len(s)) + s

    @classmethod
    def read_exact(cls, f: BytesIO, n: int) -> bytes:
        data = f.read(n)
        if len(data) != n:
            raise TxDeserializationError(
                f'Unexpected end of data: wanted {n} bytes, got {len(data)}')
        return data

    @classmethod
    def deser_compact_size(cls, f: BytesIO) -> int:
        n = struct.unpack('<B', cls.read_exact(f, 1))[0]
        if n == 0xfd:
            n = struct.unpack('<H', cls.read_exact(f, 2))[0]
        elif n == 0xfe:
            n = struct.unpack('<I', cls.read_exact(f, 4))[0]
        elif n == 0xff:
            n = struct.unpack('<Q', cls.read_exact(f, 8))[0]
        return n

    @classmethod
    def deser_string(cls, f: BytesIO) -> bytes:
        return cls.read_exact(f, cls.deser_compact_size(f))

    # ——————————————————script numbers——————————————————

    @classmethod
    def encode_script_num(cls, n: int) -> bytes:
        """Minimal little-endian sign-magnitude encoding used on the script stack."""
        if n == 0:
            return b''

        negative = n < 0
        absvalue = -n if negative else n
        result = bytearray()
        while absvalue:
            result.append(absvalue & 0xff)
            absvalue >>= 8

        # the sign bit lives in the most significant byte
        if result[-1] & 0x80:
            result.append(0x80 if negative else 0x00)
        elif negative:
            result[-1] |= 0x80

        return bytes(result)

    @classmethod
    def decode_script_num(cls, vch: bytes, max_size: int = 4,
                          require_minimal: bool = True) -> int:
        if len(vch) > max_size:
            raise ValueError('script number overflow')

        if require_minimal and len(vch) > 0:
            # the most significant byte may only be 0x00 / 0x80 if the next
            # one needs its sign bit
            if (vch[-1] & 0x7f) == 0:
                if len(vch) <= 1 or (vch[-2] & 0x80) == 0:
                    raise ValueError('non-minimally encoded script number')

        if not vch:
            return 0

        result = int.from_bytes(vch, 'little')
        if vch[-1] & 0x80:
            return -(result & ~(0x80 << (8 * (len(vch) - 1))))
        return result
