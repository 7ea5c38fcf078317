# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Unit Tests for Ledger hardware wallet communication
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
from unittest import mock
from durablesig.ledger import *


class FakeDongle(object):
    """
    Records APDUs and answers with prepared responses, or raises CommException for a status word
    """

    def __init__(self, responses=None, sw=None, error=None):
        self.responses = list(responses or [])
        self.sw = sw
        self.error = error
        self.apdus = []
        self.closed = False

    def exchange(self, apdu):
        self.apdus.append(bytes(apdu))
        if self.error is not None:
            raise self.error
        if self.sw is not None:
            raise CommException("Invalid status %04x" % self.sw, self.sw)
        if self.responses:
            return bytearray(self.responses.pop(0))
        return bytearray()

    def close(self):
        self.closed = True


class TestLedgerWallet(unittest.TestCase):

    def setUp(self):
        self.keypair = Keypair(bytes(range(32)))

    def test_ledger_get_pubkey(self):
        dongle = FakeDongle([bytes(self.keypair.public_key)])
        wallet = LedgerWallet(dongle)
        self.assertEqual(wallet.get_pubkey(DerivationPath(account=0)), self.keypair.public_key)
        self.assertEqual(dongle.apdus[0].hex(), 'e00500000d038000002c800001f580000000')

    def test_ledger_get_pubkey_invalid_length(self):
        wallet = LedgerWallet(FakeDongle([bytes(31)]))
        self.assertRaisesRegex(DeviceError, "Unexpected public key length 31", wallet.get_pubkey, DerivationPath())

    def test_ledger_sign_single_chunk(self):
        message = bytes(100)
        signature = self.keypair.sign(message)
        dongle = FakeDongle([bytes(signature)])
        wallet = LedgerWallet(dongle)
        self.assertEqual(wallet.sign_message(DerivationPath(), message), signature)
        self.assertEqual(len(dongle.apdus), 1)
        apdu = dongle.apdus[0]
        self.assertEqual(apdu[:4], bytes([LEDGER_CLA, LEDGER_INS_SIGN_MESSAGE, LEDGER_P1_CONFIRM, 0]))
        self.assertEqual(apdu[4], 110)
        self.assertEqual(apdu[5:15], b'\x01' + DerivationPath().serialize())
        self.assertEqual(apdu[15:], message)

    def test_ledger_sign_chunks(self):
        message = bytes(range(200)) * 3
        signature = self.keypair.sign(message)
        dongle = FakeDongle([b'', b'', bytes(signature)])
        wallet = LedgerWallet(dongle)
        self.assertEqual(wallet.sign_message(DerivationPath(), message), signature)
        self.assertEqual([a[3] for a in dongle.apdus], [LEDGER_P2_MORE, LEDGER_P2_EXTEND | LEDGER_P2_MORE,
                                                        LEDGER_P2_EXTEND])
        self.assertEqual([a[4] for a in dongle.apdus], [255, 255, 100])
        self.assertEqual(b''.join(a[5:] for a in dongle.apdus), b'\x01' + DerivationPath().serialize() + message)

    def test_ledger_sign_invalid_signature_length(self):
        wallet = LedgerWallet(FakeDongle([bytes(10)]))
        self.assertRaisesRegex(DeviceError, "Unexpected signature length", wallet.sign_message, DerivationPath(),
                               b'message')

    def test_ledger_status_words(self):
        for sw, expected in [(0x6985, "rejected by the user"), (0x6e00, "Solana app is not open"),
                             (0x5515, "locked"), (0x6f42, "status 0x6f42")]:
            wallet = LedgerWallet(FakeDongle(sw=sw))
            with self.assertRaises(DeviceError) as cm:
                wallet.sign_message(DerivationPath(), b'message')
            self.assertIn(expected, str(cm.exception))
            self.assertEqual(cm.exception.sw, sw)

    @mock.patch('hid.enumerate')
    def test_ledger_discover_no_device(self, mock_enumerate):
        mock_enumerate.return_value = [{'vendor_id': 0x046d, 'product_string': 'USB Receiver'}]
        self.assertRaisesRegex(DeviceNotFound, "No Ledger device found", LedgerWallet.discover)

    def test_ledger_device_disconnected(self):
        wallet = LedgerWallet(FakeDongle(error=OSError("read error")))
        with self.assertRaises(DeviceError) as cm:
            wallet.get_pubkey(DerivationPath())
        self.assertIn("read error", str(cm.exception))
        self.assertIsNone(cm.exception.sw)
        wallet = LedgerWallet(FakeDongle(error=BaseException("Error while writing")))
        self.assertRaisesRegex(DeviceError, "Error while writing", wallet.sign_message, DerivationPath(), b'message')

    @mock.patch('ledgerblue.comm.getDongle')
    @mock.patch('hid.enumerate')
    def test_ledger_discover_open_error(self, mock_enumerate, mock_get_dongle):
        mock_enumerate.return_value = [{'vendor_id': LEDGER_VENDOR_ID, 'product_string': 'Nano S'}]
        mock_get_dongle.side_effect = OSError("open failed")
        self.assertRaisesRegex(DeviceError, "open failed", LedgerWallet.discover)
        mock_get_dongle.side_effect = CommException("No dongle found", 0x6f00)
        with self.assertRaises(DeviceError) as cm:
            LedgerWallet.discover()
        self.assertEqual(cm.exception.sw, 0x6f00)

    @mock.patch('ledgerblue.comm.getDongle')
    @mock.patch('hid.enumerate')
    def test_ledger_discover(self, mock_enumerate, mock_get_dongle):
        mock_enumerate.return_value = [{'vendor_id': LEDGER_VENDOR_ID, 'product_string': 'Nano X'}]
        dongle = FakeDongle()
        mock_get_dongle.return_value = dongle
        wallet = LedgerWallet.discover()
        self.assertIs(wallet.dongle, dongle)
        wallet.close()
        self.assertTrue(dongle.closed)


class TestLedgerSigner(unittest.TestCase):

    def test_ledger_signer(self):
        keypair = Keypair(bytes(range(32)))
        message = b'serialized message'
        dongle = FakeDongle([bytes(keypair.public_key), bytes(keypair.sign(message))])
        signer = LedgerSigner(LedgerWallet(dongle), DerivationPath.parse("m/44'/501'/1'"))
        self.assertTrue(signer.is_interactive())
        self.assertEqual(signer.public_key(), keypair.public_key)
        self.assertEqual(signer.public_key(), keypair.public_key)
        self.assertEqual(len(dongle.apdus), 1)
        self.assertTrue(signer.sign(message).verify(keypair.public_key, message))
        self.assertEqual(repr(signer), "<LedgerSigner(m/44'/501'/1')>")

    def test_ledger_signer_default_path(self):
        self.assertEqual(LedgerSigner(LedgerWallet(FakeDongle())).derivation_path, DerivationPath())

    def test_ledger_signer_close(self):
        dongle = FakeDongle()
        LedgerSigner(LedgerWallet(dongle)).close()
        self.assertTrue(dongle.closed)


if __name__ == '__main__':
    unittest.main()
