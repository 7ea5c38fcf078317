# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Unit Tests for the msig command line tool
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

import io
import os
import sys
import tempfile
import unittest
from unittest import mock
from subprocess import Popen, PIPE

from durablesig.multisig import *
from durablesig.ledger import LedgerWallet, DeviceError, CommException
from durablesig.tools.msig import run, parse_args, get_signer

ROOT_DIR = os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))
NONCE_VALUE = bytes([0x42]) * 32


def key(n):
    return PublicKey(bytes([n]) * 32)


def write_keyfile(keypair):
    fd, filename = tempfile.mkstemp(suffix='.json')
    with os.fdopen(fd, 'w') as f:
        f.write(keypair.as_json())
    return filename


class FakeDongle(object):

    def __init__(self, responses=None, sw=None):
        self.responses = list(responses or [])
        self.sw = sw
        self.apdus = []
        self.closed = False

    def exchange(self, apdu):
        self.apdus.append(bytes(apdu))
        if self.sw is not None:
            raise CommException("Invalid status %04x" % self.sw, self.sw)
        return bytearray(self.responses.pop(0)) if self.responses else bytearray()

    def close(self):
        self.closed = True


class TestToolsCommandLine(unittest.TestCase):

    def setUp(self):
        self.python_executable = sys.executable
        self.owner = Keypair(bytes(range(32)))
        self.keyfile = write_keyfile(self.owner)
        self.addCleanup(os.remove, self.keyfile)
        ix = multisig_approve(PublicKey(DEFAULT_MULTISIG_PROGRAM_ID), key(10), key(11), self.owner.public_key)
        self.message = build_nonce_message([ix], self.owner.public_key, key(70), NONCE_VALUE)
        self.transport = encode_transport(self.message)

    def run_msig(self, arguments):
        cmd = [self.python_executable, '-m', 'durablesig.tools.msig'] + arguments
        process = Popen(cmd, stdout=PIPE, stderr=PIPE, cwd=ROOT_DIR)
        poutput = process.communicate()
        return poutput[0].decode()

    def test_tools_msig_sign(self):
        output = self.run_msig(['-k', self.keyfile, 'sign', '--transaction', self.transport])
        signature = self.owner.sign(self.message.serialize())
        self.assertIn("Signer: %s" % self.owner.public_key, output)
        self.assertEqual(output.strip().splitlines()[-1], str(signature))

    def test_tools_msig_sign_quiet(self):
        output = self.run_msig(['-q', '-k', self.keyfile, 'sign', '--transaction', self.transport])
        self.assertEqual(output.strip(), str(self.owner.sign(self.message.serialize())))

    def test_tools_msig_sign_not_a_signer(self):
        other_keyfile = write_keyfile(Keypair(bytes(range(1, 33))))
        self.addCleanup(os.remove, other_keyfile)
        output = self.run_msig(['-k', other_keyfile, 'sign', '--transaction', self.transport])
        self.assertIn("ValidationError", output)
        self.assertIn("is not a required signer", output)

    def test_tools_msig_sign_malformed(self):
        output = self.run_msig(['-k', self.keyfile, 'sign', '--transaction', 'bm90IGEgbWVzc2FnZQ=='])
        self.assertIn("MalformedTransport", output)


class TestToolsOperations(unittest.TestCase):

    def setUp(self):
        self.owner = Keypair(bytes(range(32)))
        self.keyfile = write_keyfile(self.owner)
        self.addCleanup(os.remove, self.keyfile)
        self.approve_args = ['approve', '--multisig', str(key(10)), '--transaction', str(key(11)),
                             '--nonce-account', str(key(70))]

    @mock.patch('sys.stdout', new_callable=io.StringIO)
    def test_tools_approve_offline(self, mock_stdout):
        transport = run(['-c', 'localnet', '-k', self.keyfile] + self.approve_args +
                         ['--nonce', b58encode(NONCE_VALUE)])
        output = mock_stdout.getvalue()
        self.assertIn("APPROVE", output)
        self.assertIn("[0] %s" % self.owner.public_key, output)
        self.assertEqual(output.strip().splitlines()[-1], transport)
        message = decode_transport(transport)
        self.assertEqual(message.recent_blockhash, NONCE_VALUE)
        self.assertEqual(message.nonce_account(), key(70))
        self.assertEqual(message.signers(), [self.owner.public_key])

    @mock.patch('sys.stdout', new_callable=io.StringIO)
    def test_tools_approve_signer_without_key(self, mock_stdout):
        transport = run(['-c', 'localnet', '--program-id', str(key(50))] + self.approve_args +
                         ['--signer', str(key(3)), '--nonce', b58encode(NONCE_VALUE)])
        message = decode_transport(transport)
        self.assertEqual(message.payer, key(3))
        self.assertEqual(message.instructions()[1].program_id, key(50))

    @mock.patch('durablesig.tools.msig.Service')
    @mock.patch('sys.stdout', new_callable=io.StringIO)
    def test_tools_approve_nonce_from_cluster(self, mock_stdout, mock_service):
        mock_service.return_value.get_nonce.return_value = NonceAccount(self.owner.public_key, NONCE_VALUE)
        transport = run(['-k', self.keyfile] + self.approve_args)
        self.assertEqual(decode_transport(transport).recent_blockhash, NONCE_VALUE)
        mock_service.return_value.get_nonce.assert_called_once_with(str(key(70)))

    @mock.patch('durablesig.tools.msig.Service')
    @mock.patch('sys.stdout', new_callable=io.StringIO)
    def test_tools_approve_submit(self, mock_stdout, mock_service):
        srv = mock_service.return_value
        srv.get_nonce.return_value = NonceAccount(self.owner.public_key, NONCE_VALUE)
        srv.send_and_confirm_transaction.side_effect = lambda t: t.txid
        txid = run(['-k', self.keyfile] + self.approve_args + ['--nonce', b58encode(NONCE_VALUE), '--submit'])
        t = srv.send_and_confirm_transaction.call_args[0][0]
        self.assertTrue(t.verify())
        self.assertEqual(txid, t.txid)
        self.assertIn("Transaction submitted and confirmed", mock_stdout.getvalue())

    def test_tools_no_payer(self):
        self.assertRaisesRegex(ValidationError, "No fee payer", run,
                               ['-q'] + self.approve_args + ['--nonce', b58encode(NONCE_VALUE)])

    @mock.patch('durablesig.ledger.LedgerWallet.discover')
    @mock.patch('sys.stdout', new_callable=io.StringIO)
    def test_tools_ledger_sign(self, mock_stdout, mock_discover):
        ix = multisig_approve(PublicKey(DEFAULT_MULTISIG_PROGRAM_ID), key(10), key(11), self.owner.public_key)
        message = build_nonce_message([ix], self.owner.public_key, key(70), NONCE_VALUE)
        signature = self.owner.sign(message.serialize())
        dongle = FakeDongle([bytes(self.owner.public_key), bytes(signature)])
        mock_discover.return_value = LedgerWallet(dongle)
        self.assertEqual(run(['--ledger', 'sign', '--transaction', encode_transport(message)]), str(signature))
        self.assertIn("approve the transaction on your Ledger device", mock_stdout.getvalue())
        # Without --account-number the key at m/44'/501'/0' is used
        self.assertEqual(dongle.apdus[0][5:].hex(), '038000002c800001f580000000')
        self.assertTrue(dongle.closed)

    @mock.patch('durablesig.ledger.LedgerWallet.discover')
    def test_tools_ledger_account_number(self, mock_discover):
        mock_discover.return_value = LedgerWallet(FakeDongle())
        signer = get_signer(parse_args(['--ledger', 'sign', '--transaction', 'AAAA']))
        self.assertEqual(signer.derivation_path, DerivationPath(account=0))
        self.assertEqual(str(signer.derivation_path), "m/44'/501'/0'")
        signer = get_signer(parse_args(['--ledger', '-n', '3', 'sign', '--transaction', 'AAAA']))
        self.assertEqual(str(signer.derivation_path), "m/44'/501'/3'")

    @mock.patch('durablesig.ledger.LedgerWallet.discover')
    def test_tools_ledger_closed_on_error(self, mock_discover):
        dongle = FakeDongle(sw=0x6985)
        mock_discover.return_value = LedgerWallet(dongle)
        self.assertRaisesRegex(DeviceError, "rejected by the user", run,
                               ['-q', '--ledger'] + self.approve_args + ['--nonce', b58encode(NONCE_VALUE)])
        self.assertTrue(dongle.closed)

    def test_tools_quiet_output_closed(self):
        with mock.patch('durablesig.tools.msig.open', mock.mock_open(), create=True) as mock_file:
            self.assertRaises(ValidationError, run, ['-q'] + self.approve_args + ['--nonce', b58encode(NONCE_VALUE)])
        mock_file.assert_called_once_with(os.devnull, 'w')
        self.assertTrue(mock_file.return_value.close.called)

    @mock.patch('sys.stderr', new_callable=io.StringIO)
    def test_tools_invalid_arguments(self, mock_stderr):
        self.assertRaises(SystemExit, run, ['-n', '1', 'sign', '--transaction', 'AAAA'])
        self.assertIn("--account-number can only be used with --ledger", mock_stderr.getvalue())
        self.assertRaises(SystemExit, run, ['approve', '--multisig', str(key(10))])
        self.assertRaises(SystemExit, run, [])


if __name__ == '__main__':
    unittest.main()
