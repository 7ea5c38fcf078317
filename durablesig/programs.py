# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    PROGRAMS - Instruction encoders and account decoders for the system, token and multisig programs
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

from decimal import Decimal, InvalidOperation
from durablesig.transactions import *

_logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION_CREATE_ACCOUNT = 0
TOKEN_INSTRUCTION_TRANSFER = 3
U64_MAX = 2 ** 64 - 1


class ProgramError(DurableSigError):
    """
    Invalid instruction arguments or account data
    """
    log_level = logging.INFO


#
# Borsh serialization, as used by Anchor programs
#

def borsh_u8(value):
    return int(value).to_bytes(1, 'little')


def borsh_u32(value):
    return int(value).to_bytes(4, 'little')


def borsh_u64(value):
    if not 0 <= value <= U64_MAX:
        raise ProgramError("Value %d out of range for u64" % value)
    return int(value).to_bytes(8, 'little')


def borsh_bool(value):
    return b'\x01' if value else b'\x00'


def borsh_bytes(data):
    return borsh_u32(len(data)) + bytes(data)


def borsh_vec(items, encoder):
    return borsh_u32(len(items)) + b''.join(encoder(i) for i in items)


class BorshReader(object):
    """
    Read Borsh encoded values from account data
    """

    def __init__(self, data):
        self.s = BytesIO(bytes(data))

    def read(self, size):
        try:
            return read_exact(self.s, size)
        except EncodingError as e:
            raise ProgramError("Account data too short: %s" % e.msg)

    def u8(self):
        return self.read(1)[0]

    def u32(self):
        return int.from_bytes(self.read(4), 'little')

    def u64(self):
        return int.from_bytes(self.read(8), 'little')

    def bool(self):
        value = self.u8()
        if value > 1:
            raise ProgramError("Invalid boolean value %d in account data" % value)
        return value == 1

    def pubkey(self):
        return PublicKey(self.read(PUBLIC_KEY_SIZE))

    def bytes(self):
        return self.read(self.u32())

    def vec(self, reader):
        return [reader() for _ in range(self.u32())]


def anchor_discriminator(namespace, name):
    """
    First 8 bytes of the SHA256 hash of '<namespace>:<name>'. Anchor prefixes instruction data with the
    'global' discriminator of the instruction name and account data with the 'account' discriminator of the type.

    :param namespace: 'global' for instructions, 'account' for account types
    :type namespace: str
    :param name: Instruction name in snake case or account type name
    :type name: str

    :return bytes:
    """
    return sha256(('%s:%s' % (namespace, name)).encode())[:8]


#
# System program
#

def system_create_account(from_pubkey, new_account, lamports, space, owner):
    """
    Create a new account funded by from_pubkey. Both accounts must sign.

    :param from_pubkey: Funding account
    :type from_pubkey: PublicKey
    :param new_account: Address of account to create
    :type new_account: PublicKey
    :param lamports: Balance for the new account, use the rent exempt minimum for its size
    :type lamports: int
    :param space: Size of account data in bytes
    :type space: int
    :param owner: Program which will own the new account
    :type owner: PublicKey

    :return Instruction:
    """
    data = borsh_u32(SYSTEM_INSTRUCTION_CREATE_ACCOUNT) + borsh_u64(lamports) + borsh_u64(space) + \
        bytes(PublicKey(owner))
    return Instruction(SYSTEM_PROGRAM, [
        AccountMeta(from_pubkey, is_signer=True, is_writable=True),
        AccountMeta(new_account, is_signer=True, is_writable=True),
    ], data)


#
# SPL Token program
#

def ui_amount_to_amount(ui_amount, decimals):
    """
    Convert human readable token amount to base units. Conversion is exact, amounts with more fractional digits
    than the mint supports are refused.

    >>> ui_amount_to_amount('1.5', 6)
    1500000

    :param ui_amount: Amount in token units
    :type ui_amount: str, Decimal, int
    :param decimals: Number of decimals of the token mint
    :type decimals: int

    :return int:
    """
    try:
        amount = Decimal(str(ui_amount))
    except InvalidOperation:
        raise ProgramError("Invalid token amount '%s'" % ui_amount)
    if not amount.is_finite():
        raise ProgramError("Invalid token amount '%s'" % ui_amount)
    base_units = amount.scaleb(decimals)
    if base_units != base_units.to_integral_value():
        raise ProgramError("Amount %s has more than %d decimals" % (ui_amount, decimals))
    base_units = int(base_units)
    if not 0 <= base_units <= U64_MAX:
        raise ProgramError("Amount %s out of range" % ui_amount)
    return base_units


def amount_to_ui_amount(amount, decimals):
    """
    Convert base units to human readable token amount

    >>> amount_to_ui_amount(2000000, 6)
    Decimal('2')

    :param amount: Amount in base units
    :type amount: int
    :param decimals: Number of decimals of the token mint
    :type decimals: int

    :return Decimal:
    """
    value = Decimal(int(amount)).scaleb(-decimals)
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def token_transfer(source, destination, authority, amount, signers=None, program_id=TOKEN_PROGRAM):
    """
    SPL token transfer instruction

    :param source: Source token account
    :type source: PublicKey
    :param destination: Destination token account
    :type destination: PublicKey
    :param authority: Owner or delegate of the source account
    :type authority: PublicKey
    :param amount: Amount in base units
    :type amount: int
    :param signers: Signers of a token multisig authority, leave empty for single authority
    :type signers: list of PublicKey

    :return Instruction:
    """
    accounts = [
        AccountMeta(source, is_signer=False, is_writable=True),
        AccountMeta(destination, is_signer=False, is_writable=True),
        AccountMeta(authority, is_signer=not signers, is_writable=False),
    ]
    for signer in signers or []:
        accounts.append(AccountMeta(signer, is_signer=True, is_writable=False))
    return Instruction(program_id, accounts, borsh_u8(TOKEN_INSTRUCTION_TRANSFER) + borsh_u64(amount))


def unpack_token_transfer(data):
    """
    Get amount from SPL token transfer instruction data

    :param data: Instruction data
    :type data: bytes

    :return int: Amount in base units
    """
    if len(data) != 9 or data[0] != TOKEN_INSTRUCTION_TRANSFER:
        raise ProgramError("Instruction is not a token transfer")
    return int.from_bytes(data[1:], 'little')


#
# Multisig program
#

def derive_multisig_signer(multisig, program_id):
    """
    Program derived address which signs for the multisig, with its bump seed. Seed is the multisig address.

    :param multisig: Multisig account address
    :type multisig: PublicKey
    :param program_id: Multisig program
    :type program_id: PublicKey

    :return (PublicKey, int):
    """
    return find_program_address([bytes(PublicKey(multisig))], program_id)


class MultisigTransactionAccount(object):
    """
    Account reference stored in a proposed multisig transaction
    """

    @classmethod
    def from_meta(cls, meta):
        return cls(meta.pubkey, meta.is_signer, meta.is_writable)

    @classmethod
    def parse(cls, reader):
        return cls(reader.pubkey(), reader.bool(), reader.bool())

    def __init__(self, pubkey, is_signer, is_writable):
        self.pubkey = PublicKey(pubkey)
        self.is_signer = is_signer
        self.is_writable = is_writable

    def __repr__(self):
        return "<MultisigTransactionAccount(%s, signer=%s, writable=%s)>" % \
               (self.pubkey, self.is_signer, self.is_writable)

    def __eq__(self, other):
        return isinstance(other, MultisigTransactionAccount) and self.serialize() == other.serialize()

    def serialize(self):
        return bytes(self.pubkey) + borsh_bool(self.is_signer) + borsh_bool(self.is_writable)

    def as_meta(self):
        return AccountMeta(self.pubkey, self.is_signer, self.is_writable)


def multisig_create(program_id, multisig, owners, threshold, nonce):
    """
    Initialize a multisig account, which must have been created in the same transaction

    :return Instruction:
    """
    data = anchor_discriminator('global', 'create_multisig') + \
        borsh_vec([PublicKey(o) for o in owners], bytes) + borsh_u64(threshold) + borsh_u8(nonce)
    return Instruction(program_id, [
        AccountMeta(multisig, is_signer=True, is_writable=True),
        AccountMeta(SYSVAR_RENT, is_signer=False, is_writable=False),
    ], data)


def multisig_create_transaction(program_id, multisig, transaction, proposer, pid, accounts, data):
    """
    Propose a transaction to the multisig. The inner instruction is stored as program id, accounts and data in the
    new transaction account.

    :param pid: Program the proposed instruction calls
    :type pid: PublicKey
    :param accounts: Accounts of the proposed instruction
    :type accounts: list of MultisigTransactionAccount
    :param data: Data of the proposed instruction
    :type data: bytes

    :return Instruction:
    """
    ix_data = anchor_discriminator('global', 'create_transaction') + bytes(PublicKey(pid)) + \
        borsh_vec(accounts, lambda a: a.serialize()) + borsh_bytes(data)
    return Instruction(program_id, [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(transaction, is_signer=True, is_writable=True),
        AccountMeta(proposer, is_signer=True, is_writable=False),
        AccountMeta(SYSVAR_RENT, is_signer=False, is_writable=False),
    ], ix_data)


def multisig_approve(program_id, multisig, transaction, owner):
    """
    Approve a proposed transaction as one of the multisig owners

    :return Instruction:
    """
    return Instruction(program_id, [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(transaction, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=True, is_writable=False),
    ], anchor_discriminator('global', 'approve'))


def multisig_execute_transaction(program_id, multisig, multisig_signer, transaction, remaining_accounts):
    """
    Execute a transaction which reached the approval threshold. The remaining accounts are passed on to the inner
    instruction and must follow the order stored in the transaction account.

    :param remaining_accounts: Accounts of the inner instruction followed by its program id
    :type remaining_accounts: list of AccountMeta

    :return Instruction:
    """
    return Instruction(program_id, [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(multisig_signer, is_signer=False, is_writable=False),
        AccountMeta(transaction, is_signer=False, is_writable=True),
    ] + list(remaining_accounts), anchor_discriminator('global', 'execute_transaction'))


class MultisigAccount(object):
    """
    Multisig account data: owners, threshold and bump seed of the signer address
    """

    @classmethod
    def parse(cls, data):
        """
        Decode multisig account data

        :param data: Raw account data
        :type data: bytes

        :return MultisigAccount:
        """
        if bytes(data[:8]) != anchor_discriminator('account', 'Multisig'):
            raise ProgramError("Account is not a multisig account")
        r = BorshReader(data[8:])
        owners = r.vec(r.pubkey)
        threshold = r.u64()
        nonce = r.u8()
        owner_set_seqno = r.u32()
        return cls(owners, threshold, nonce, owner_set_seqno)

    def __init__(self, owners, threshold, nonce, owner_set_seqno=0):
        self.owners = owners
        self.threshold = threshold
        self.nonce = nonce
        self.owner_set_seqno = owner_set_seqno

    def __repr__(self):
        return "<MultisigAccount(%d-of-%d)>" % (self.threshold, len(self.owners))

    def serialize(self):
        return anchor_discriminator('account', 'Multisig') + borsh_vec(self.owners, bytes) + \
            borsh_u64(self.threshold) + borsh_u8(self.nonce) + borsh_u32(self.owner_set_seqno)

    def as_dict(self):
        return {
            'owners': [str(o) for o in self.owners],
            'threshold': self.threshold,
            'nonce': self.nonce,
            'owner_set_seqno': self.owner_set_seqno,
        }


class TransactionAccount(object):
    """
    Proposed multisig transaction: target program, accounts, data and approval flags per owner
    """

    @classmethod
    def parse(cls, data):
        """
        Decode multisig transaction account data

        :param data: Raw account data
        :type data: bytes

        :return TransactionAccount:
        """
        if bytes(data[:8]) != anchor_discriminator('account', 'Transaction'):
            raise ProgramError("Account is not a multisig transaction account")
        r = BorshReader(data[8:])
        multisig = r.pubkey()
        program_id = r.pubkey()
        accounts = r.vec(lambda: MultisigTransactionAccount.parse(r))
        ix_data = r.bytes()
        signers = r.vec(r.bool)
        did_execute = r.bool()
        owner_set_seqno = r.u32()
        return cls(multisig, program_id, accounts, ix_data, signers, did_execute, owner_set_seqno)

    def __init__(self, multisig, program_id, accounts, data, signers=None, did_execute=False, owner_set_seqno=0):
        self.multisig = PublicKey(multisig)
        self.program_id = PublicKey(program_id)
        self.accounts = accounts
        self.data = bytes(data)
        self.signers = signers or []
        self.did_execute = did_execute
        self.owner_set_seqno = owner_set_seqno

    def __repr__(self):
        return "<TransactionAccount(%s, %d approvals, executed=%s)>" % \
               (self.program_id, self.approvals, self.did_execute)

    @property
    def approvals(self):
        return len([s for s in self.signers if s])

    def serialize(self):
        return anchor_discriminator('account', 'Transaction') + bytes(self.multisig) + bytes(self.program_id) + \
            borsh_vec(self.accounts, lambda a: a.serialize()) + borsh_bytes(self.data) + \
            borsh_vec(self.signers, borsh_bool) + borsh_bool(self.did_execute) + borsh_u32(self.owner_set_seqno)

    def as_dict(self):
        return {
            'multisig': str(self.multisig),
            'program_id': str(self.program_id),
            'accounts': [a.as_meta().as_dict() for a in self.accounts],
            'data': self.data.hex(),
            'signers': self.signers,
            'did_execute': self.did_execute,
            'owner_set_seqno': self.owner_set_seqno,
        }


#
# Durable nonce accounts
#

class NonceAccount(object):
    """
    Durable nonce account state: authority and current nonce value
    """

    @classmethod
    def parse(cls, data):
        """
        Decode nonce account data: version u32, state u32, authority, nonce value and fee per signature

        :param data: Raw account data
        :type data: bytes

        :return NonceAccount:
        """
        if len(data) != NONCE_ACCOUNT_SIZE:
            raise ProgramError("Account is not a nonce account, data size is %d bytes" % len(data))
        r = BorshReader(data)
        r.u32()
        state = r.u32()
        if state != NONCE_STATE_INITIALIZED:
            raise ProgramError("Nonce account is not initialized")
        authority = r.pubkey()
        nonce = r.read(32)
        lamports_per_signature = r.u64()
        return cls(authority, nonce, lamports_per_signature)

    def __init__(self, authority, nonce, lamports_per_signature=0):
        self.authority = PublicKey(authority)
        self.nonce = to_hash(nonce)
        self.lamports_per_signature = lamports_per_signature

    def __repr__(self):
        return "<NonceAccount(%s)>" % self.nonce_str

    @property
    def nonce_str(self):
        return b58encode(self.nonce)

    def serialize(self):
        return borsh_u32(1) + borsh_u32(NONCE_STATE_INITIALIZED) + bytes(self.authority) + self.nonce + \
            borsh_u64(self.lamports_per_signature)
