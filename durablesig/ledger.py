# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    LEDGER - Sign messages with the Solana app on a Ledger hardware wallet
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

from ledgerblue.commException import CommException
from durablesig.signers import *

_logger = logging.getLogger(__name__)


class DeviceError(DurableSigError):
    """
    Ledger device returned an error or could not be reached
    """

    def __init__(self, msg='', sw=None):
        self.sw = sw
        super(DeviceError, self).__init__(msg)


class DeviceNotFound(DeviceError):
    """
    No Ledger device connected
    """


def status_message(sw):
    """
    Human readable message for a status word returned by the device

    >>> status_message(0x6985)
    'Operation rejected by the user on the Ledger device'

    :param sw: Status word
    :type sw: int

    :return str:
    """
    if sw in LEDGER_STATUS_MESSAGES:
        return LEDGER_STATUS_MESSAGES[sw]
    return "Ledger device returned status 0x%04x" % sw


class LedgerWallet(object):
    """
    Session with a Ledger device running the Solana app.

    Use :func:`discover` to connect to the first device found. Any object with an exchange(apdu) method which
    returns the response data and raises CommException on errors can be passed as dongle.
    """

    @classmethod
    def discover(cls):
        """
        Find a connected Ledger device and open it

        :return LedgerWallet:
        """
        import hid
        from ledgerblue.comm import getDongle

        devices = [d for d in hid.enumerate(0, 0) if d.get('vendor_id') == LEDGER_VENDOR_ID]
        if not devices:
            raise DeviceNotFound("No Ledger device found, please connect and unlock your device")
        _logger.info("Found %d Ledger device(s), using %s" % (len(devices), devices[0].get('product_string')))
        try:
            dongle = getDongle(debug=False)
        except CommException as e:
            raise DeviceError("Could not open Ledger device: %s" % e.message, e.sw)
        except OSError as e:
            raise DeviceError("Could not open Ledger device, check the USB permissions: %s" % e)
        return cls(dongle)

    def __init__(self, dongle):
        self.dongle = dongle

    def __repr__(self):
        return "<LedgerWallet(%s)>" % self.dongle

    def close(self):
        if hasattr(self.dongle, 'close'):
            self.dongle.close()

    def _exchange(self, ins, p1, p2, payload):
        apdu = bytes([LEDGER_CLA, ins, p1, p2, len(payload)]) + payload
        _logger.debug("APDU >> %s" % apdu.hex())
        try:
            response = self.dongle.exchange(apdu)
        except CommException as e:
            raise DeviceError(status_message(e.sw), e.sw)
        except OSError as e:
            raise DeviceError("Could not read from Ledger device, is it still connected? %s" % e)
        except (KeyboardInterrupt, SystemExit):
            raise
        except BaseException as e:
            # ledgerblue raises a plain BaseException when writing to the HID device fails
            raise DeviceError("Could not write to Ledger device, is it still connected? %s" % e)
        return bytes(response)

    def get_pubkey(self, derivation_path):
        """
        Get public key for derivation path. The device does not ask for confirmation.

        :param derivation_path: Path of key on device
        :type derivation_path: DerivationPath

        :return PublicKey:
        """
        response = self._exchange(LEDGER_INS_GET_PUBKEY, LEDGER_P1_NON_CONFIRM, 0, derivation_path.serialize())
        if len(response) != PUBLIC_KEY_SIZE:
            raise DeviceError("Unexpected public key length %d from Ledger device" % len(response))
        return PublicKey(response)

    def sign_message(self, derivation_path, message):
        """
        Sign serialized message with key on derivation path. Blocks until the user approves or rejects the
        message on the device.

        Long messages are sent in chunks of at most 255 bytes. The first chunk holds the derivation path, following
        chunks are flagged as extension and all chunks but the last are flagged with 'more'.

        :param derivation_path: Path of key on device
        :type derivation_path: DerivationPath
        :param message: Serialized message
        :type message: bytes

        :return Signature:
        """
        payload = b'\x01' + derivation_path.serialize()
        message = bytes(message)
        first_size = LEDGER_MAX_CHUNK_SIZE - len(payload)
        chunks = [payload + message[:first_size]]
        remaining = message[first_size:]
        while remaining:
            chunks.append(remaining[:LEDGER_MAX_CHUNK_SIZE])
            remaining = remaining[LEDGER_MAX_CHUNK_SIZE:]

        _logger.info("Sending message of %d bytes to Ledger in %d chunk(s)" % (len(message), len(chunks)))
        response = b''
        for n, chunk in enumerate(chunks):
            p2 = 0
            if n > 0:
                p2 |= LEDGER_P2_EXTEND
            if n < len(chunks) - 1:
                p2 |= LEDGER_P2_MORE
            response = self._exchange(LEDGER_INS_SIGN_MESSAGE, LEDGER_P1_CONFIRM, p2, chunk)
        if len(response) != SIGNATURE_SIZE:
            raise DeviceError("Unexpected signature length %d from Ledger device" % len(response))
        return Signature(response)


class LedgerSigner(Signer):
    """
    Sign with a key on a Ledger device. Every signature must be approved on the device.
    """

    def __init__(self, wallet, derivation_path=None):
        self.wallet = wallet
        self.derivation_path = derivation_path or DerivationPath()
        self._public_key = None

    def public_key(self):
        if self._public_key is None:
            self._public_key = self.wallet.get_pubkey(self.derivation_path)
        return self._public_key

    def sign(self, message):
        return self.wallet.sign_message(self.derivation_path, message)

    def is_interactive(self):
        return True

    def close(self):
        self.wallet.close()

    def __repr__(self):
        return "<LedgerSigner(%s)>" % self.derivation_path
