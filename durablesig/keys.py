# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    KEYS - Public keys, keypairs, signatures and program derived addresses
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

import json
from Crypto.Random import get_random_bytes
from Crypto.Signature import eddsa
from durablesig.encoding import *

_logger = logging.getLogger(__name__)


class BKeyError(DurableSigError):
    """
    Handle Key class Exceptions

    """
    log_level = logging.INFO


def is_on_curve(data):
    """
    Check if 32 bytes decode to a valid point on the ed25519 curve. Program derived addresses must be off the curve,
    so no private key can exist for them.

    :param data: Compressed ed25519 point
    :type data: bytes

    :return bool:
    """
    try:
        eddsa.import_public_key(bytes(data))
    except ValueError:
        return False
    return True


class PublicKey(object):
    """
    Solana public key, 32 bytes shown as a base58 string. Used for wallets, program ids and all other account
    addresses.

    >>> pk = PublicKey('11111111111111111111111111111111')
    >>> bytes(pk).hex()
    '0000000000000000000000000000000000000000000000000000000000000000'
    >>> str(pk)
    '11111111111111111111111111111111'
    """

    def __init__(self, value):
        """
        Create a public key from base58 string, raw bytes or another PublicKey object

        :param value: Key in base58 or bytes format
        :type value: str, bytes, PublicKey
        """
        if isinstance(value, PublicKey):
            self._key = value._key
        elif isinstance(value, (bytes, bytearray)):
            if len(value) != PUBLIC_KEY_SIZE:
                raise BKeyError("Public key must be %d bytes, %d bytes given" % (PUBLIC_KEY_SIZE, len(value)))
            self._key = bytes(value)
        elif isinstance(value, str):
            try:
                self._key = b58decode(value.strip(), PUBLIC_KEY_SIZE)
            except EncodingError as e:
                raise BKeyError("Invalid public key '%s': %s" % (value, e.msg))
        else:
            raise BKeyError("Unknown public key format %s" % type(value).__name__)

    def __repr__(self):
        return "<PublicKey(%s)>" % str(self)

    def __str__(self):
        return b58encode(self._key)

    def __bytes__(self):
        return self._key

    def __len__(self):
        return len(self._key)

    def __eq__(self, other):
        if other is None:
            return False
        if not isinstance(other, PublicKey):
            try:
                other = PublicKey(other)
            except BKeyError:
                return False
        return self._key == other._key

    def __lt__(self, other):
        return self._key < bytes(other)

    def __hash__(self):
        return hash(self._key)

    @property
    def hex(self):
        return self._key.hex()

    def is_on_curve(self):
        return is_on_curve(self._key)


SYSTEM_PROGRAM = PublicKey(SYSTEM_PROGRAM_ID)
TOKEN_PROGRAM = PublicKey(TOKEN_PROGRAM_ID)
SYSVAR_RENT = PublicKey(SYSVAR_RENT_ID)
SYSVAR_RECENT_BLOCKHASHES = PublicKey(SYSVAR_RECENT_BLOCKHASHES_ID)


def create_program_address(seeds, program_id):
    """
    Create program derived address from seeds and program id. The address is the SHA256 hash of the seeds, program
    id and marker. Fails if the hash happens to be a valid curve point, use find_program_address to search for a
    bump seed which gives an address off the curve.

    :param seeds: List of seeds, each seed 32 bytes at most
    :type seeds: list of bytes
    :param program_id: Owning program
    :type program_id: PublicKey, str, bytes

    :return PublicKey:
    """
    if len(seeds) > MAX_SEEDS:
        raise BKeyError("Maximum of %d seeds allowed for program address" % MAX_SEEDS)
    hash_input = b''
    for seed in seeds:
        seed = bytes(seed)
        if len(seed) > MAX_SEED_LENGTH:
            raise BKeyError("Seed length %d exceeds maximum of %d bytes" % (len(seed), MAX_SEED_LENGTH))
        hash_input += seed
    hash_input += bytes(PublicKey(program_id)) + PDA_MARKER
    address = sha256(hash_input)
    if is_on_curve(address):
        raise BKeyError("Invalid seeds, address must fall off the curve")
    return PublicKey(address)


def find_program_address(seeds, program_id):
    """
    Find valid program derived address and its bump seed. Bumps are tried from 255 downwards, the first address
    off the curve is returned. Result is deterministic for the same seeds and program id.

    :param seeds: List of seeds, each seed 32 bytes at most
    :type seeds: list of bytes
    :param program_id: Owning program
    :type program_id: PublicKey, str, bytes

    :return (PublicKey, int): Address and bump seed
    """
    for bump in range(255, -1, -1):
        try:
            address = create_program_address(list(seeds) + [bytes([bump])], program_id)
        except BKeyError:
            continue
        return address, bump
    raise BKeyError("Unable to find a viable program address bump seed")


class Signature(object):
    """
    Ed25519 signature of 64 bytes, shown as base58 string
    """

    @classmethod
    def parse(cls, signature):
        """
        Parse signature from base58 string or raw bytes

        :param signature: Signature as base58 string or 64 bytes
        :type signature: str, bytes, Signature

        :return Signature:
        """
        if isinstance(signature, Signature):
            return signature
        if isinstance(signature, str):
            try:
                signature = b58decode(signature.strip(), SIGNATURE_SIZE)
            except EncodingError as e:
                raise BKeyError("Invalid signature: %s" % e.msg)
        return Signature(signature)

    @staticmethod
    def default():
        """
        Empty signature used as placeholder for signers which did not sign yet

        :return Signature:
        """
        return Signature(bytes(SIGNATURE_SIZE))

    def __init__(self, signature):
        if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
            raise BKeyError("Signature length must be %d bytes" % SIGNATURE_SIZE)
        self.signature = bytes(signature)

    def __repr__(self):
        return "<Signature(%s)>" % str(self)

    def __str__(self):
        return b58encode(self.signature)

    def __bytes__(self):
        return self.signature

    def __eq__(self, other):
        if not isinstance(other, Signature):
            return False
        return self.signature == other.signature

    def __hash__(self):
        return hash(self.signature)

    @property
    def is_default(self):
        return self.signature == bytes(SIGNATURE_SIZE)

    def verify(self, public_key, message):
        """
        Verify this signature for given message and public key

        :param public_key: Public key of signer
        :type public_key: PublicKey, str, bytes
        :param message: Signed message
        :type message: bytes

        :return bool:
        """
        try:
            key = eddsa.import_public_key(bytes(PublicKey(public_key)))
            eddsa.new(key, 'rfc8032').verify(bytes(message), self.signature)
        except ValueError:
            return False
        return True


class Keypair(object):
    """
    Ed25519 keypair. Import from a 32 byte seed, a 64 byte secret key (seed followed by public key) or a key file as
    written by the solana-keygen tool.

    Create a keypair from seed and sign a message:

    >>> kp = Keypair(bytes(range(32)))
    >>> kp.public_key == Keypair.from_bytes(kp.secret).public_key
    True
    >>> kp.sign(b'hello').verify(kp.public_key, b'hello')
    True
    """

    @classmethod
    def from_bytes(cls, secret):
        """
        Import keypair from 64 byte secret key. The public key part is checked against the seed.

        :param secret: Seed followed by public key
        :type secret: bytes, list of int

        :return Keypair:
        """
        try:
            secret = bytes(secret)
        except (TypeError, ValueError):
            raise BKeyError("Secret key must be a list of byte values")
        if len(secret) == 32:
            return cls(secret)
        if len(secret) != 64:
            raise BKeyError("Secret key must be 64 bytes, %d bytes given" % len(secret))
        kp = cls(secret[:32])
        if bytes(kp.public_key) != secret[32:]:
            raise BKeyError("Public key in secret key does not match private key")
        return kp

    @classmethod
    def from_json(cls, json_str):
        try:
            values = json.loads(json_str)
        except ValueError as e:
            raise BKeyError("Key file is not valid JSON: %s" % e)
        if not isinstance(values, list) or not all(isinstance(v, int) and 0 <= v < 256 for v in values):
            raise BKeyError("Key file must contain a JSON array of byte values")
        return cls.from_bytes(values)

    @classmethod
    def from_file(cls, filename):
        """
        Read keypair from a JSON key file with an array of 64 byte values

        :param filename: Path to key file
        :type filename: str, Path

        :return Keypair:
        """
        fn = Path(filename).expanduser()
        if not fn.is_file():
            raise BKeyError("Key file %s not found" % fn)
        _logger.info("Reading keypair from %s" % fn)
        with fn.open('r') as f:
            return cls.from_json(f.read())

    def __init__(self, seed=None):
        """
        Create a new keypair from seed. A random seed is generated if none is provided.

        :param seed: 32 byte private key seed
        :type seed: bytes
        """
        if seed is None:
            seed = get_random_bytes(32)
        if not isinstance(seed, (bytes, bytearray)) or len(seed) != 32:
            raise BKeyError("Private key seed must be 32 bytes")
        self.seed = bytes(seed)
        self._key = eddsa.import_private_key(self.seed)
        self.public_key = PublicKey(self._key.public_key().export_key(format='raw'))

    def __repr__(self):
        return "<Keypair(%s)>" % self.public_key

    @property
    def secret(self):
        return self.seed + bytes(self.public_key)

    def as_json(self):
        """
        Export keypair in key file format: JSON array of 64 byte values

        :return str:
        """
        return json.dumps(list(self.secret))

    def sign(self, message):
        """
        Sign message with this keypair. Ed25519 signatures are deterministic.

        :param message: Message to sign
        :type message: bytes

        :return Signature:
        """
        return Signature(eddsa.new(self._key, 'rfc8032').sign(bytes(message)))


class DerivationPath(object):
    """
    BIP44 derivation path for Solana keys on hardware devices: m/44'/501'/account'/change'. All levels are hardened.

    >>> str(DerivationPath(account=1))
    "m/44'/501'/1'"
    >>> DerivationPath(account=1).serialize().hex()
    '038000002c800001f580000001'
    """

    HARDENED = 0x80000000

    @classmethod
    def parse(cls, path):
        """
        Parse path string such as m/44'/501'/0'/0'

        :param path: Derivation path
        :type path: str

        :return DerivationPath:
        """
        items = path.strip().split('/')
        if items and items[0] in ['m', 'M']:
            items = items[1:]
        indexes = []
        for item in items:
            if item[-1:] in ["'", 'h', 'H']:
                item = item[:-1]
            if not item.isdigit():
                raise BKeyError("Invalid item '%s' in derivation path %s" % (item, path))
            indexes.append(int(item))
        if len(indexes) < 2 or indexes[0] != 44 or indexes[1] != SOLANA_BIP44_COINTYPE:
            raise BKeyError("Derivation path must start with m/44'/%d'" % SOLANA_BIP44_COINTYPE)
        if len(indexes) > 4:
            raise BKeyError("Derivation path %s has too many levels" % path)
        account = indexes[2] if len(indexes) > 2 else None
        change = indexes[3] if len(indexes) > 3 else None
        return cls(account, change)

    def __init__(self, account=None, change=None):
        if change is not None and account is None:
            raise BKeyError("Derivation path with a change level needs an account level")
        for index in [account, change]:
            if index is not None and not 0 <= index < self.HARDENED:
                raise BKeyError("Derivation index %d out of range" % index)
        self.account = account
        self.change = change

    def __repr__(self):
        return "<DerivationPath(%s)>" % str(self)

    def __str__(self):
        return 'm/' + '/'.join("%d'" % (i & ~self.HARDENED) for i in self.path())

    def __eq__(self, other):
        return isinstance(other, DerivationPath) and self.path() == other.path()

    def path(self):
        """
        List of hardened child indexes

        :return list of int:
        """
        indexes = [44, SOLANA_BIP44_COINTYPE]
        if self.account is not None:
            indexes.append(self.account)
        if self.change is not None:
            indexes.append(self.change)
        return [i | self.HARDENED for i in indexes]

    def serialize(self):
        """
        Serialize path as used by the Ledger Solana app: number of levels followed by 4 byte big-endian indexes

        :return bytes:
        """
        path = self.path()
        return bytes([len(path)]) + b''.join(i.to_bytes(4, 'big') for i in path)
