# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    ENCODING - Methods for encoding and conversion
#    © 2024 October - 1200 Web Development <http://1200wd.com/>
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU Affero General Public License as
#    published by the Free Software Foundation, either version 3 of the
#    License, or (at your option) any later version.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU Affero General Public License for more details.
#
#    You should have received a copy of the GNU Affero General Public License
#    along with this program.  If not, see <http://www.gnu.org/licenses/>.
#

import numbers
import hashlib
from durablesig.main import *
_logger = logging.getLogger(__name__)


class EncodingError(DurableSigError):
    """ Log and raise encoding errors """
    log_level = logging.INFO


code_strings = {
    2: b'01',
    10: b'0123456789',
    16: b'0123456789abcdef',
    58: b'123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz',
}

# Number of leading zero bytes represented by one leading zero character
_ZERO_BYTES_PER_CHAR = {256: 1, 58: 1, 16: 0.5}


def _decode_base(chars, base):
    """
    Read input in given base as integer and count its leading zero characters

    :return tuple: (value, leading zeros)
    """
    if base == 256:
        data = bytes(chars)
        return int.from_bytes(data, 'big'), len(data) - len(data.lstrip(b'\x00'))
    if isinstance(chars, (bytes, bytearray)):
        chars = bytes(chars).decode('ISO-8859-1')
    if not isinstance(chars, str):
        raise EncodingError("Unknown input format %s" % chars)
    if base == 16:
        chars = chars.lower()
    code_str = code_strings[base]
    value = 0
    for c in chars:
        pos = code_str.find(c.encode('ISO-8859-1', 'replace'))
        if pos < 0:
            raise EncodingError("Unknown character %s found in input string" % c)
        value = value * base + pos
    zeros = len(chars) - len(chars.lstrip(chr(code_str[0])))
    return value, zeros


def change_base(chars, base_from, base_to, min_length=0):
    """
    Convert input chars from one numeric base to another. Supported bases are 2, 10, 16, 58 and 256 (bytes).

    Leading zeros survive conversions between bytes, hexadecimal and base58: every zero byte becomes a '1' in
    base58 and '00' in hexadecimal.

    >>> change_base('FF', 16, 10)
    255
    >>> change_base('101', 2, 10)
    5

    Convert a base-58 Solana address to hexadecimal format

    >>> change_base('11111111111111111111111111111111', 58, 16)
    '0000000000000000000000000000000000000000000000000000000000000000'

    :param chars: Input string, bytes for base 256 or integer for base 10
    :type chars: str, bytes, int
    :param base_from: Base of input
    :type base_from: int
    :param base_to: Base of output
    :type base_to: int
    :param min_length: Minimal output length, output is padded with zeros
    :type min_length: int

    :return str, bytes, int: Integer for base 10, bytes for base 256, string otherwise
    """
    for base in [base_from, base_to]:
        if base != 256 and base not in code_strings:
            raise EncodingError("Unsupported base %s" % base)
    if base_from == 10 and isinstance(chars, numbers.Integral):
        value, zeros = int(chars), 0
    else:
        value, zeros = _decode_base(chars, base_from)
    if base_to == 10:
        return value

    zero_bytes = int(zeros * _ZERO_BYTES_PER_CHAR.get(base_from, 0))
    if base_to == 256:
        data = b'\x00' * zero_bytes + (value.to_bytes((value.bit_length() + 7) // 8, 'big') if value else b'')
        return data.rjust(min_length, b'\x00')

    code_str = code_strings[base_to]
    output = []
    while value:
        value, remainder = divmod(value, base_to)
        output.append(chr(code_str[remainder]))
    output = ''.join(reversed(output))
    if base_to == 16 and len(output) % 2:
        output = '0' + output
    if base_to in _ZERO_BYTES_PER_CHAR:
        output = chr(code_str[0]) * int(zero_bytes / _ZERO_BYTES_PER_CHAR[base_to]) + output
    return output.rjust(min_length, chr(code_str[0]))


def b58encode(data):
    """
    Encode bytes as base58 string, the text form of Solana public keys and signatures

    >>> b58encode(bytes(32))
    '11111111111111111111111111111111'

    :param data: Bytes to encode
    :type data: bytes

    :return str:
    """
    if not isinstance(data, (bytes, bytearray)):
        raise EncodingError("Base58 encoding expects bytes, not %s" % type(data).__name__)
    if not data:
        return ''
    return change_base(bytes(data), 256, 58)


def b58decode(string, length=None):
    """
    Decode base58 string to bytes. Characters outside the base58 alphabet are rejected.

    >>> b58decode('11111111111111111111111111111111', 32).hex()
    '0000000000000000000000000000000000000000000000000000000000000000'

    :param string: Base58 encoded string
    :type string: str
    :param length: Expected length of the decoded bytes. Raise an error if the length differs
    :type length: int

    :return bytes:
    """
    if isinstance(string, bytes):
        string = string.decode('ISO-8859-1')
    if not isinstance(string, str) or not string:
        raise EncodingError("Please provide a non-empty base58 string")
    invalid = [c for c in string if c.encode('ISO-8859-1', 'replace') not in code_strings[58]]
    if invalid:
        raise EncodingError("Invalid base58 character '%s' in %s" % (invalid[0], string))
    decoded = change_base(string, 58, 256)
    if length is not None and len(decoded) != length:
        raise EncodingError("Base58 string %s decodes to %d bytes, expected %d" % (string, len(decoded), length))
    return decoded


def int_to_compact_u16(inp):
    """
    Convert integer to compact-u16 bytes, the variable length integer used as length prefix in Solana messages.
    Seven bits per byte, high bit set when more bytes follow.

    >>> int_to_compact_u16(300).hex()
    'ac02'

    :param inp: Integer to convert, 0 to 65535
    :type inp: int

    :return bytes: 1 to 3 bytes
    """
    if not isinstance(inp, numbers.Integral) or isinstance(inp, bool):
        raise EncodingError("Input must be an integer")
    if inp < 0 or inp > 0xffff:
        raise EncodingError("Value %d out of range for compact-u16" % inp)
    out = bytearray()
    while True:
        elem = inp & 0x7f
        inp >>= 7
        if not inp:
            out.append(elem)
            break
        out.append(elem | 0x80)
    return bytes(out)


def compact_u16_to_int(byteint):
    """
    Convert compact-u16 encoded bytes to integer. Non-canonical encodings and values above 65535 are rejected.

    >>> compact_u16_to_int(bytes.fromhex('ac02'))
    (300, 2)

    :param byteint: 1-3 byte representation, extra bytes are ignored
    :type byteint: bytes

    :return (int, int): tuple with converted integer and size
    """
    if not isinstance(byteint, (bytes, bytearray)):
        raise EncodingError("Byteint must be defined as bytes")
    value = 0
    for i in range(3):
        if i >= len(byteint):
            raise EncodingError("Compact-u16 value incomplete")
        elem = byteint[i]
        if not elem and i:
            raise EncodingError("Non-canonical compact-u16 encoding")
        value |= (elem & 0x7f) << (i * 7)
        if not elem & 0x80:
            if value > 0xffff:
                raise EncodingError("Compact-u16 value overflow")
            return value, i + 1
    raise EncodingError("Compact-u16 value uses more than 3 bytes")


def read_compact_u16(s):
    """
    Read compact-u16 integer from BytesIO stream. Wrapper for the compact_u16_to_int method

    :param s: A binary stream
    :type s: BytesIO

    :return int:
    """
    pos = s.tell()
    value, size = compact_u16_to_int(s.read(3))
    s.seek(pos + size)
    return value


def read_exact(s, size):
    """
    Read exactly size bytes from BytesIO stream

    :param s: A binary stream
    :type s: BytesIO
    :param size: Number of bytes to read
    :type size: int

    :return bytes:
    """
    data = s.read(size)
    if len(data) != size:
        raise EncodingError("Unexpected end of data, %d bytes expected but %d found" % (size, len(data)))
    return data


def shortvec(data):
    """
    Convert bytes to a compact-u16 length prefixed byte string

    >>> shortvec(b'\\x03\\x00').hex()
    '020300'

    :param data: Data to prefix
    :type data: bytes

    :return bytes:
    """
    return int_to_compact_u16(len(data)) + bytes(data)


def sha256(string, as_hex=False):
    """
    Get SHA256 hash of string

    :param string: String to be hashed
    :type string: bytes
    :param as_hex: Return value as hexadecimal string. Default is False
    :type as_hex: bool

    :return bytes, str:
    """
    if not as_hex:
        return hashlib.sha256(string).digest()
    else:
        return hashlib.sha256(string).hexdigest()
