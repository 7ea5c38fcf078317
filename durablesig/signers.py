# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    SIGNERS - Common interface for local key files and hardware devices
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

from durablesig.keys import *

_logger = logging.getLogger(__name__)


class Signer(object):
    """
    Base class for signers. A signer has one public key and produces ed25519 signatures over serialized messages.

    Interactive signers need human action for each signature, callers should print instructions before calling
    :func:`sign`.
    """

    def public_key(self):
        """
        Public key of this signer

        :return PublicKey:
        """
        raise NotImplementedError

    def sign(self, message):
        """
        Sign serialized message

        :param message: Serialized message
        :type message: bytes

        :return Signature:
        """
        raise NotImplementedError

    def is_interactive(self):
        return False

    def close(self):
        """
        Release the device or other resources held by this signer
        """
        pass

    def __repr__(self):
        return "<%s(%s)>" % (self.__class__.__name__, self.public_key())


class KeypairSigner(Signer):
    """
    Sign with a keypair in memory, usually read from a Solana JSON key file

    >>> signer = KeypairSigner(Keypair(bytes(32)))
    >>> signer.is_interactive()
    False
    """

    @classmethod
    def from_file(cls, filename):
        """
        Load signer from key file. The file is read once.

        :param filename: Path to JSON key file
        :type filename: str, Path

        :return KeypairSigner:
        """
        return cls(Keypair.from_file(filename))

    def __init__(self, keypair):
        if not isinstance(keypair, Keypair):
            keypair = Keypair.from_bytes(keypair)
        self.keypair = keypair

    def public_key(self):
        return self.keypair.public_key

    def sign(self, message):
        return self.keypair.sign(message)
