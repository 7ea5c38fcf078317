# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    TRANSACTIONS - Instructions, nonce anchored messages, transactions and transport strings
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

import base64
import binascii
import json
from io import BytesIO
from durablesig.keys import *

_logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION_ADVANCE_NONCE = 4
MAX_ACCOUNT_KEYS = 256


class TransactionError(DurableSigError):
    """
    Handle Transaction class Exceptions
    """


class MalformedTransport(DurableSigError):
    """
    Transport string or signature could not be decoded
    """
    log_level = logging.WARNING


def to_hash(value):
    """
    Convert blockhash or nonce value in base58 or bytes format to 32 bytes

    :param value: Hash as base58 string or bytes
    :type value: str, bytes

    :return bytes:
    """
    if isinstance(value, PublicKey):
        return bytes(value)
    if isinstance(value, str):
        try:
            return b58decode(value.strip(), 32)
        except EncodingError as e:
            raise TransactionError("Invalid hash '%s': %s" % (value, e.msg))
    if isinstance(value, (bytes, bytearray)) and len(value) == 32:
        return bytes(value)
    raise TransactionError("Hash must be 32 bytes or a base58 string")


class AccountMeta(object):
    """
    Account used by an instruction, with signer and writable flags
    """

    def __init__(self, pubkey, is_signer=False, is_writable=False):
        self.pubkey = PublicKey(pubkey)
        self.is_signer = bool(is_signer)
        self.is_writable = bool(is_writable)

    def __repr__(self):
        return "<AccountMeta(%s, signer=%s, writable=%s)>" % (self.pubkey, self.is_signer, self.is_writable)

    def __eq__(self, other):
        return isinstance(other, AccountMeta) and self.pubkey == other.pubkey and \
            self.is_signer == other.is_signer and self.is_writable == other.is_writable

    def as_dict(self):
        return {
            'pubkey': str(self.pubkey),
            'is_signer': self.is_signer,
            'is_writable': self.is_writable,
        }


class Instruction(object):
    """
    Program call: program id, ordered list of accounts and opaque instruction data
    """

    def __init__(self, program_id, accounts=None, data=b''):
        self.program_id = PublicKey(program_id)
        self.accounts = accounts or []
        self.data = bytes(data)

    def __repr__(self):
        return "<Instruction(%s, %d accounts, data %s)>" % (self.program_id, len(self.accounts), self.data.hex())

    def __eq__(self, other):
        return isinstance(other, Instruction) and self.program_id == other.program_id and \
            self.accounts == other.accounts and self.data == other.data

    def as_dict(self):
        return {
            'program_id': str(self.program_id),
            'accounts': [a.as_dict() for a in self.accounts],
            'data': self.data.hex(),
        }


def advance_nonce_instruction(nonce_account, nonce_authority):
    """
    System program instruction to advance a durable nonce. Must be the first instruction of a message which uses
    the nonce value as blockhash.

    :param nonce_account: Durable nonce account
    :type nonce_account: PublicKey, str
    :param nonce_authority: Authority of the nonce account, must sign the transaction
    :type nonce_authority: PublicKey, str

    :return Instruction:
    """
    return Instruction(SYSTEM_PROGRAM, [
        AccountMeta(nonce_account, is_signer=False, is_writable=True),
        AccountMeta(SYSVAR_RECENT_BLOCKHASHES, is_signer=False, is_writable=False),
        AccountMeta(nonce_authority, is_signer=True, is_writable=False),
    ], SYSTEM_INSTRUCTION_ADVANCE_NONCE.to_bytes(4, 'little'))


class MessageHeader(object):

    def __init__(self, num_required_signatures, num_readonly_signed_accounts, num_readonly_unsigned_accounts):
        self.num_required_signatures = num_required_signatures
        self.num_readonly_signed_accounts = num_readonly_signed_accounts
        self.num_readonly_unsigned_accounts = num_readonly_unsigned_accounts

    def __repr__(self):
        return "<MessageHeader(%d, %d, %d)>" % (self.num_required_signatures, self.num_readonly_signed_accounts,
                                                self.num_readonly_unsigned_accounts)

    def __eq__(self, other):
        return isinstance(other, MessageHeader) and bytes(self) == bytes(other)

    def __bytes__(self):
        return bytes([self.num_required_signatures, self.num_readonly_signed_accounts,
                      self.num_readonly_unsigned_accounts])


class CompiledInstruction(object):
    """
    Instruction with program id and accounts replaced by indexes in the message account keys list
    """

    def __init__(self, program_id_index, accounts, data):
        self.program_id_index = program_id_index
        self.accounts = list(accounts)
        self.data = bytes(data)

    def __repr__(self):
        return "<CompiledInstruction(%d, %s, %s)>" % (self.program_id_index, self.accounts, self.data.hex())

    def __eq__(self, other):
        return isinstance(other, CompiledInstruction) and self.serialize() == other.serialize()

    def serialize(self):
        return bytes([self.program_id_index]) + shortvec(bytes(self.accounts)) + shortvec(self.data)


class Message(object):
    """
    Legacy Solana message: header, account keys, recent blockhash and compiled instructions. This is the data each
    signer signs.

    When a durable nonce is used the recent blockhash field contains the nonce value, and the first instruction
    advances the nonce. Such a message stays valid until the nonce account is advanced, so signatures can be
    collected over days instead of the minute or so a recent blockhash lasts.
    """

    @classmethod
    def compile(cls, instructions, payer, recent_blockhash):
        """
        Compile instructions into a message. The payer is the first account key. Other keys are grouped in writable
        signers, readonly signers, writable non-signers and readonly non-signers, and sorted by key within a group.

        :param instructions: Instructions to include in this order
        :type instructions: list of Instruction
        :param payer: Fee payer, always a writable signer
        :type payer: PublicKey, str
        :param recent_blockhash: Blockhash or durable nonce value
        :type recent_blockhash: str, bytes

        :return Message:
        """
        payer = PublicKey(payer)
        key_metas = {}
        for ix in instructions:
            key_metas.setdefault(ix.program_id, [False, False])
            for am in ix.accounts:
                meta = key_metas.setdefault(am.pubkey, [False, False])
                meta[0] = meta[0] or am.is_signer
                meta[1] = meta[1] or am.is_writable
        key_metas[payer] = [True, True]

        others = sorted(k for k in key_metas if k != payer)
        writable_signers = [payer] + [k for k in others if key_metas[k][0] and key_metas[k][1]]
        readonly_signers = [k for k in others if key_metas[k][0] and not key_metas[k][1]]
        writable_unsigned = [k for k in others if not key_metas[k][0] and key_metas[k][1]]
        readonly_unsigned = [k for k in others if not key_metas[k][0] and not key_metas[k][1]]
        account_keys = writable_signers + readonly_signers + writable_unsigned + readonly_unsigned
        if len(account_keys) > MAX_ACCOUNT_KEYS:
            raise TransactionError("Too many accounts in message: %d" % len(account_keys))

        header = MessageHeader(len(writable_signers) + len(readonly_signers), len(readonly_signers),
                               len(readonly_unsigned))
        key_index = dict((k, i) for i, k in enumerate(account_keys))
        compiled = [CompiledInstruction(key_index[ix.program_id], [key_index[a.pubkey] for a in ix.accounts],
                                        ix.data) for ix in instructions]
        return cls(header, account_keys, recent_blockhash, compiled)

    @classmethod
    def parse(cls, raw):
        """
        Parse serialized message. Raise MalformedTransport if data is incomplete, has trailing bytes or contains
        invalid account references.

        :param raw: Serialized message
        :type raw: bytes, BytesIO

        :return Message:
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = BytesIO(bytes(raw))
        try:
            header_bytes = read_exact(raw, 3)
            if header_bytes[0] & 0x80:
                raise MalformedTransport("Versioned messages are not supported")
            header = MessageHeader(header_bytes[0], header_bytes[1], header_bytes[2])
            n_keys = read_compact_u16(raw)
            account_keys = [PublicKey(read_exact(raw, PUBLIC_KEY_SIZE)) for _ in range(n_keys)]
            recent_blockhash = read_exact(raw, 32)
            n_instructions = read_compact_u16(raw)
            instructions = []
            for _ in range(n_instructions):
                program_id_index = read_exact(raw, 1)[0]
                accounts = list(read_exact(raw, read_compact_u16(raw)))
                data = read_exact(raw, read_compact_u16(raw))
                instructions.append(CompiledInstruction(program_id_index, accounts, data))
        except EncodingError as e:
            raise MalformedTransport("Could not parse message: %s" % e.msg)
        if raw.read(1):
            raise MalformedTransport("Unexpected data after end of message")

        message = cls(header, account_keys, recent_blockhash, instructions)
        message.sanitize()
        return message

    def __init__(self, header, account_keys, recent_blockhash, instructions):
        self.header = header
        self.account_keys = [PublicKey(k) for k in account_keys]
        self.recent_blockhash = to_hash(recent_blockhash)
        self.compiled_instructions = instructions

    def __repr__(self):
        return "<Message(%d keys, %d instructions, blockhash %s)>" % \
               (len(self.account_keys), len(self.compiled_instructions), b58encode(self.recent_blockhash))

    def __eq__(self, other):
        return isinstance(other, Message) and self.serialize() == other.serialize()

    def __hash__(self):
        return hash(self.serialize())

    def sanitize(self):
        """
        Check header and instruction indexes against the list of account keys
        """
        n_keys = len(self.account_keys)
        h = self.header
        if h.num_readonly_signed_accounts >= h.num_required_signatures:
            raise MalformedTransport("Message needs a writable fee payer signature")
        if h.num_required_signatures + h.num_readonly_unsigned_accounts > n_keys:
            raise MalformedTransport("Message header does not match number of account keys")
        if len(set(self.account_keys)) != n_keys:
            raise MalformedTransport("Message contains duplicate account keys")
        for ci in self.compiled_instructions:
            if not 0 < ci.program_id_index < n_keys:
                raise MalformedTransport("Invalid program id index %d in message" % ci.program_id_index)
            if any(i >= n_keys for i in ci.accounts):
                raise MalformedTransport("Invalid account index in message instruction")

    def serialize(self):
        """
        Serialize message in the canonical wire format. This is the data signed by each signer.

        :return bytes:
        """
        raw = bytes(self.header)
        raw += int_to_compact_u16(len(self.account_keys)) + b''.join(bytes(k) for k in self.account_keys)
        raw += self.recent_blockhash
        raw += int_to_compact_u16(len(self.compiled_instructions))
        raw += b''.join(ci.serialize() for ci in self.compiled_instructions)
        return raw

    def is_signer(self, index):
        return index < self.header.num_required_signatures

    def is_writable(self, index):
        h = self.header
        if index < h.num_required_signatures:
            return index < h.num_required_signatures - h.num_readonly_signed_accounts
        return index < len(self.account_keys) - h.num_readonly_unsigned_accounts

    def signers(self):
        """
        Public keys of required signers, in the order signatures must be provided

        :return list of PublicKey:
        """
        return self.account_keys[:self.header.num_required_signatures]

    @property
    def payer(self):
        return self.account_keys[0]

    def instructions(self):
        """
        Decompile message instructions back to Instruction objects with account flags derived from the header

        :return list of Instruction:
        """
        instructions = []
        for ci in self.compiled_instructions:
            accounts = [AccountMeta(self.account_keys[i], self.is_signer(i), self.is_writable(i))
                        for i in ci.accounts]
            instructions.append(Instruction(self.account_keys[ci.program_id_index], accounts, ci.data))
        return instructions

    def nonce_account(self):
        """
        Durable nonce account of this message, or None if the message uses a recent blockhash

        :return PublicKey:
        """
        if not self.compiled_instructions:
            return None
        ci = self.compiled_instructions[0]
        if self.account_keys[ci.program_id_index] != SYSTEM_PROGRAM or len(ci.accounts) < 3 or \
                ci.data != SYSTEM_INSTRUCTION_ADVANCE_NONCE.to_bytes(4, 'little'):
            return None
        return self.account_keys[ci.accounts[0]]

    def as_dict(self):
        return {
            'header': list(bytes(self.header)),
            'account_keys': [str(k) for k in self.account_keys],
            'recent_blockhash': b58encode(self.recent_blockhash),
            'nonce_account': str(self.nonce_account()) if self.nonce_account() else None,
            'signers': [str(k) for k in self.signers()],
            'instructions': [ix.as_dict() for ix in self.instructions()],
        }

    def info(self):
        """
        Prints message information to standard output
        """
        print("Fee payer: %s" % self.payer)
        nonce_account = self.nonce_account()
        if nonce_account:
            print("Durable nonce account: %s" % nonce_account)
            print("Nonce value: %s" % b58encode(self.recent_blockhash))
        else:
            print("Recent blockhash: %s" % b58encode(self.recent_blockhash))
        print("Required signers")
        for n, signer in enumerate(self.signers()):
            print("  [%d] %s" % (n, signer))
        print("Instructions")
        for ix in self.instructions():
            print("- program %s, data %s" % (ix.program_id, ix.data.hex()))
            for am in ix.accounts:
                print("    %s %s%s" % (am.pubkey, 'S' if am.is_signer else '-', 'W' if am.is_writable else '-'))


def build_nonce_message(instructions, payer, nonce_account, nonce_value, nonce_authority=None):
    """
    Build message anchored on a durable nonce. An instruction to advance the nonce is placed before the given
    instructions and the blockhash field is set to the current nonce value.

    :param instructions: Instructions of the operation
    :type instructions: list of Instruction
    :param payer: Fee payer
    :type payer: PublicKey, str
    :param nonce_account: Durable nonce account
    :type nonce_account: PublicKey, str
    :param nonce_value: Current value stored in the nonce account
    :type nonce_value: str, bytes
    :param nonce_authority: Authority of the nonce account. Default is the payer
    :type nonce_authority: PublicKey, str

    :return Message:
    """
    if nonce_authority is None:
        nonce_authority = payer
    ixs = [advance_nonce_instruction(nonce_account, nonce_authority)] + list(instructions)
    message = Message.compile(ixs, payer, nonce_value)
    _logger.info("Built message with %d instructions anchored on nonce account %s" % (len(ixs), nonce_account))
    return message


def encode_transport(message):
    """
    Encode message as transport string: base64 of the serialized message

    :param message: Message to encode
    :type message: Message

    :return str:
    """
    return base64.b64encode(message.serialize()).decode()


def decode_transport(transport):
    """
    Decode transport string to message

    :param transport: Base64 transport string
    :type transport: str

    :return Message:
    """
    if isinstance(transport, bytes):
        transport = transport.decode('ISO-8859-1')
    transport = ''.join(transport.split())
    if not transport:
        raise MalformedTransport("Empty transport string")
    try:
        raw = base64.b64decode(transport, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedTransport("Transport string is not valid base64: %s" % e)
    return Message.parse(raw)


class Transaction(object):
    """
    Message with a signature for each required signer. Signatures can be added in any order, missing signatures
    are kept as empty placeholders.
    """

    @classmethod
    def parse(cls, raw):
        """
        Parse serialized transaction

        :param raw: Serialized transaction
        :type raw: bytes

        :return Transaction:
        """
        raw = BytesIO(bytes(raw))
        try:
            n_signatures = read_compact_u16(raw)
            signatures = [Signature(read_exact(raw, SIGNATURE_SIZE)) for _ in range(n_signatures)]
        except EncodingError as e:
            raise MalformedTransport("Could not parse transaction signatures: %s" % e.msg)
        message = Message.parse(raw)
        return cls(message, signatures)

    def __init__(self, message, signatures=None):
        self.message = message
        n_signers = message.header.num_required_signatures
        if signatures is None:
            signatures = [Signature.default() for _ in range(n_signers)]
        if len(signatures) != n_signers:
            raise TransactionError("Transaction requires %d signatures, %d given" % (n_signers, len(signatures)))
        self.signatures = [Signature.parse(s) for s in signatures]

    def __repr__(self):
        return "<Transaction(%s, %d/%d signatures)>" % (self.txid, self.signature_count,
                                                        len(self.signatures))

    def __eq__(self, other):
        return isinstance(other, Transaction) and self.serialize() == other.serialize()

    @property
    def txid(self):
        return str(self.signatures[0]) if self.signatures else ''

    @property
    def signature_count(self):
        return len([s for s in self.signatures if not s.is_default])

    @property
    def is_signed(self):
        return all(not s.is_default for s in self.signatures)

    def signer_index(self, public_key):
        try:
            return self.message.signers().index(PublicKey(public_key))
        except ValueError:
            raise TransactionError("%s is not a required signer of this transaction" % public_key)

    def add_signature(self, public_key, signature):
        """
        Place signature at the position of the given signer

        :param public_key: Signer of this signature
        :type public_key: PublicKey, str
        :param signature: Signature of the serialized message
        :type signature: Signature, str, bytes
        """
        self.signatures[self.signer_index(public_key)] = Signature.parse(signature)

    def sign(self, signers):
        """
        Sign message with all given signers. Each signer must be a required signer of the message.

        :param signers: Signer objects with public_key() and sign() methods
        :type signers: list of Signer
        """
        message = self.message.serialize()
        for signer in signers:
            pubkey = signer.public_key()
            index = self.signer_index(pubkey)
            self.signatures[index] = signer.sign(message)
            _logger.info("Transaction signed by %s" % pubkey)

    def verify(self):
        """
        Verify all signatures. Missing signatures make the transaction invalid.

        :return bool:
        """
        message = self.message.serialize()
        for pubkey, sig in zip(self.message.signers(), self.signatures):
            if sig.is_default or not sig.verify(pubkey, message):
                return False
        return True

    def serialize(self):
        """
        Serialize transaction to wire format: signatures followed by the message

        :return bytes:
        """
        return int_to_compact_u16(len(self.signatures)) + b''.join(bytes(s) for s in self.signatures) + \
            self.message.serialize()

    def as_base64(self):
        return base64.b64encode(self.serialize()).decode()

    def as_dict(self):
        return {
            'txid': self.txid,
            'signatures': [None if s.is_default else str(s) for s in self.signatures],
            'message': self.message.as_dict(),
        }

    def as_json(self):
        return json.dumps(self.as_dict(), indent=4)

    def info(self):
        """
        Prints transaction information to standard output
        """
        print("Transaction %s" % self.txid)
        self.message.info()
        print("Signatures")
        for pubkey, sig in zip(self.message.signers(), self.signatures):
            print("  %s: %s" % (pubkey, 'missing' if sig.is_default else sig))
