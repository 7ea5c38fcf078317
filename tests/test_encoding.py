# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Unit Tests for Encoding functions
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

import unittest
from io import BytesIO
from durablesig.encoding import *


class TestEncodingBase58(unittest.TestCase):

    def test_b58encode(self):
        self.assertEqual(b58encode(b'hello world'), 'StV1DL6CwTryKyV')
        self.assertEqual(b58encode(bytes(32)), '1' * 32)
        self.assertEqual(b58encode(b'\x00\x00\x01'), '112')
        self.assertEqual(b58encode(b''), '')

    def test_b58decode(self):
        self.assertEqual(b58decode('StV1DL6CwTryKyV'), b'hello world')
        self.assertEqual(b58decode('112'), b'\x00\x00\x01')
        self.assertEqual(b58decode('1' * 32, 32), bytes(32))

    def test_b58decode_invalid(self):
        self.assertRaisesRegex(EncodingError, "Invalid base58 character '0'", b58decode, '10abc')
        self.assertRaisesRegex(EncodingError, "Invalid base58 character 'l'", b58decode, 'hello')
        self.assertRaisesRegex(EncodingError, "expected 32", b58decode, 'StV1DL6CwTryKyV', 32)
        self.assertRaises(EncodingError, b58decode, '')

    def test_b58encode_bytes_only(self):
        self.assertRaises(EncodingError, b58encode, 'not bytes')

    def test_change_base(self):
        self.assertEqual(change_base('ff', 16, 10), 255)
        self.assertEqual(change_base(b'\x01\x00', 256, 16), '0100')
        self.assertEqual(change_base(b'\x00\x01', 256, 16), '0001')
        self.assertEqual(change_base('00ff', 16, 58), '15Q')
        self.assertEqual(change_base('15Q', 58, 256), b'\x00\xff')
        self.assertEqual(change_base(5, 10, 2, min_length=4), '0101')
        self.assertEqual(change_base('ff', 16, 256, min_length=3), b'\x00\x00\xff')
        self.assertRaisesRegex(EncodingError, "Unsupported base", change_base, 'ff', 16, 32)
        self.assertRaisesRegex(EncodingError, "Unknown character", change_base, 'fg', 16, 10)


class TestEncodingCompactU16(unittest.TestCase):

    def test_int_to_compact_u16(self):
        vectors = [
            (0, '00'),
            (0x7f, '7f'),
            (0x80, '8001'),
            (0xff, 'ff01'),
            (0x100, '8002'),
            (0x3fff, 'ff7f'),
            (0x4000, '808001'),
            (0xffff, 'ffff03'),
        ]
        for value, expected in vectors:
            self.assertEqual(int_to_compact_u16(value).hex(), expected)
            self.assertEqual(compact_u16_to_int(bytes.fromhex(expected)), (value, len(expected) // 2))

    def test_int_to_compact_u16_range(self):
        self.assertRaises(EncodingError, int_to_compact_u16, -1)
        self.assertRaises(EncodingError, int_to_compact_u16, 0x10000)
        self.assertRaises(EncodingError, int_to_compact_u16, 1.5)

    def test_compact_u16_to_int_strict(self):
        # Alias encodings of 0 and 127
        self.assertRaisesRegex(EncodingError, "Non-canonical", compact_u16_to_int, bytes.fromhex('8000'))
        self.assertRaisesRegex(EncodingError, "Non-canonical", compact_u16_to_int, bytes.fromhex('ff00'))
        self.assertRaisesRegex(EncodingError, "overflow", compact_u16_to_int, bytes.fromhex('808004'))
        self.assertRaisesRegex(EncodingError, "more than 3 bytes", compact_u16_to_int, bytes.fromhex('808080'))
        self.assertRaisesRegex(EncodingError, "incomplete", compact_u16_to_int, bytes.fromhex('80'))

    def test_read_compact_u16(self):
        s = BytesIO(bytes.fromhex('ac02ff'))
        self.assertEqual(read_compact_u16(s), 300)
        self.assertEqual(s.read(), b'\xff')

    def test_shortvec(self):
        self.assertEqual(shortvec(b'\x01\x02\x03').hex(), '03010203')
        self.assertEqual(shortvec(bytes(200))[:2].hex(), 'c801')

    def test_read_exact(self):
        s = BytesIO(b'\x01\x02')
        self.assertEqual(read_exact(s, 1), b'\x01')
        self.assertRaisesRegex(EncodingError, "Unexpected end of data", read_exact, s, 2)


class TestEncodingHelpers(unittest.TestCase):

    def test_sha256(self):
        self.assertEqual(sha256(b'', as_hex=True),
                         'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855')


if __name__ == '__main__':
    unittest.main()
