# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    MULTISIG - Build multisig operations, collect signatures and submit
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

from collections import OrderedDict
from durablesig.services.services import *
from durablesig.signers import KeypairSigner

_logger = logging.getLogger(__name__)


class ValidationError(DurableSigError):
    """
    Invalid user input for a multisig operation
    """
    log_level = logging.WARNING


class MintMismatch(ValidationError):
    """
    Source and destination token accounts hold different tokens
    """


class InsufficientFunds(ValidationError):
    """
    Source token account balance is lower than the requested amount
    """


def parse_amount(amount):
    """
    Parse positive token amount. Floats are not accepted to avoid rounding surprises.

    >>> parse_amount('2.50')
    Decimal('2.50')

    :param amount: Amount in token units
    :type amount: str, Decimal, int

    :return Decimal:
    """
    if isinstance(amount, float):
        raise ValidationError("Amount must be given as string or Decimal, not float")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError("Invalid amount '%s'" % amount)
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero, %s given" % amount)
    return value


class OperationPlan(object):
    """
    Instructions of one multisig operation with the fee payer and the ephemeral keypairs which must sign now.

    Ephemeral keypairs are created for new accounts and are not stored anywhere, so their signatures are added
    when the message is built.
    """

    def __init__(self, name, instructions, payer, signers=None, summary=None):
        self.name = name
        self.instructions = instructions
        self.payer = PublicKey(payer)
        self.signers = signers or []
        self.summary = summary or OrderedDict()

    def __repr__(self):
        return "<OperationPlan(%s, %d instructions)>" % (self.name, len(self.instructions))

    def message(self, nonce_account, nonce_value, nonce_authority=None):
        """
        Compile plan into a message anchored on a durable nonce

        :param nonce_account: Durable nonce account
        :type nonce_account: PublicKey, str
        :param nonce_value: Current nonce value
        :type nonce_value: str, bytes
        :param nonce_authority: Nonce authority, default is the fee payer
        :type nonce_authority: PublicKey, str

        :return Message:
        """
        return build_nonce_message(self.instructions, self.payer, nonce_account, nonce_value, nonce_authority)

    def transaction(self, message):
        """
        Create transaction for message and add the signatures of the ephemeral keypairs

        :param message: Message compiled from this plan
        :type message: Message

        :return Transaction:
        """
        t = Transaction(message)
        t.sign([KeypairSigner(kp) for kp in self.signers])
        return t


class Multisig(object):
    """
    Build the operations of a multisig lifecycle: create a multisig, propose a token transfer, approve it and
    execute it when enough owners approved.

    Each operation returns an :class:`OperationPlan`. On-chain state is read through the service when an operation
    needs it and never cached.
    """

    def __init__(self, service, program_id=DEFAULT_MULTISIG_PROGRAM_ID):
        self.service = service
        self.program_id = PublicKey(program_id)

    def __repr__(self):
        return "<Multisig(%s)>" % self.program_id

    def signer_address(self, multisig):
        return derive_multisig_signer(multisig, self.program_id)[0]

    def create_multisig(self, payer, owners, threshold, multisig_keypair=None):
        """
        Create and initialize a new multisig account.

        :param payer: Fee payer and funder of the new account
        :type payer: PublicKey, str
        :param owners: Owner public keys, order is kept
        :type owners: list of PublicKey, str
        :param threshold: Number of approvals required to execute a transaction
        :type threshold: int
        :param multisig_keypair: Keypair for the multisig account. A new one is generated if omitted
        :type multisig_keypair: Keypair

        :return OperationPlan:
        """
        owners = [PublicKey(o) for o in owners]
        if not owners:
            raise ValidationError("At least one owner is required")
        if len(set(owners)) != len(owners):
            raise ValidationError("Owners must be unique")
        try:
            threshold = int(threshold)
        except (TypeError, ValueError):
            raise ValidationError("Threshold must be an integer")
        if not 1 <= threshold <= len(owners):
            raise ValidationError("Threshold must be between 1 and the number of owners (%d), %d given" %
                                  (len(owners), threshold))
        kp = multisig_keypair or Keypair()
        multisig = kp.public_key
        signer, bump = derive_multisig_signer(multisig, self.program_id)
        rent = self.service.get_minimum_balance_for_rent_exemption(MULTISIG_ACCOUNT_SIZE)
        _logger.info("Create %d-of-%d multisig %s with signer %s" % (threshold, len(owners), multisig, signer))
        instructions = [
            system_create_account(payer, multisig, rent, MULTISIG_ACCOUNT_SIZE, self.program_id),
            multisig_create(self.program_id, multisig, owners, threshold, bump),
        ]
        summary = OrderedDict([
            ('multisig', str(multisig)),
            ('multisig_signer', str(signer)),
            ('owners', [str(o) for o in owners]),
            ('threshold', threshold),
        ])
        return OperationPlan('create-multisig', instructions, payer, [kp], summary)

    def create_transaction(self, proposer, multisig, source, destination, amount, transaction_keypair=None):
        """
        Propose a token transfer from a token account owned by the multisig signer.

        :param proposer: Fee payer and proposer, must be an owner of the multisig
        :type proposer: PublicKey, str
        :param multisig: Multisig account
        :type multisig: PublicKey, str
        :param source: Source token account
        :type source: PublicKey, str
        :param destination: Destination token account
        :type destination: PublicKey, str
        :param amount: Amount in token units, for instance '1.5'
        :type amount: str, Decimal
        :param transaction_keypair: Keypair for the proposal account. A new one is generated if omitted
        :type transaction_keypair: Keypair

        :return OperationPlan:
        """
        multisig = PublicKey(multisig)
        source = PublicKey(source)
        destination = PublicKey(destination)
        amount = parse_amount(amount)
        try:
            src = self.service.get_token_account(source)
        except NotFound:
            raise NotFound("Source token account %s not found" % source)
        try:
            dst = self.service.get_token_account(destination)
        except NotFound:
            raise NotFound("Destination token account %s not found" % destination)
        if src.mint != dst.mint:
            raise MintMismatch("Source mint %s differs from destination mint %s" % (src.mint, dst.mint))
        if amount > src.balance:
            raise InsufficientFunds("Insufficient funds: balance of %s is %s, %s requested" %
                                    (source, src.ui_amount_string, amount))
        try:
            base_units = ui_amount_to_amount(amount, src.decimals)
        except ProgramError as e:
            raise ValidationError(e.msg)

        signer = self.signer_address(multisig)
        if src.owner != signer:
            _logger.warning("Source token account %s is owned by %s, not by multisig signer %s" %
                            (source, src.owner, signer))
        transfer = token_transfer(source, destination, signer, base_units)
        accounts = [MultisigTransactionAccount.from_meta(m) for m in transfer.accounts]

        kp = transaction_keypair or Keypair()
        rent = self.service.get_minimum_balance_for_rent_exemption(TRANSACTION_ACCOUNT_SIZE)
        instructions = [
            system_create_account(proposer, kp.public_key, rent, TRANSACTION_ACCOUNT_SIZE, self.program_id),
            multisig_create_transaction(self.program_id, multisig, kp.public_key, proposer, transfer.program_id,
                                        accounts, transfer.data),
        ]
        summary = OrderedDict([
            ('multisig', str(multisig)),
            ('transaction', str(kp.public_key)),
            ('source', str(source)),
            ('destination', str(destination)),
            ('mint', str(src.mint)),
            ('amount', str(amount)),
            ('amount_base_units', base_units),
        ])
        return OperationPlan('create-transaction', instructions, proposer, [kp], summary)

    def approve(self, owner, multisig, transaction):
        """
        Approve a proposed transaction. The owner signs and pays the fee. Duplicate approvals are left to the
        program to handle.

        :return OperationPlan:
        """
        summary = OrderedDict([
            ('multisig', str(PublicKey(multisig))),
            ('transaction', str(PublicKey(transaction))),
            ('owner', str(PublicKey(owner))),
        ])
        return OperationPlan('approve', [multisig_approve(self.program_id, multisig, transaction, owner)], owner,
                             summary=summary)

    def execute_transaction(self, payer, multisig, transaction, source=None, destination=None):
        """
        Execute a proposed transaction. The accounts of the proposal are read from chain and passed on in the order
        they were recorded.

        If source or destination are given they are compared with the accounts of the recorded token transfer.

        :param payer: Fee payer
        :type payer: PublicKey, str
        :param multisig: Multisig account
        :type multisig: PublicKey, str
        :param transaction: Proposed transaction account
        :type transaction: PublicKey, str
        :param source: Expected source token account
        :type source: PublicKey, str
        :param destination: Expected destination token account
        :type destination: PublicKey, str

        :return OperationPlan:
        """
        multisig = PublicKey(multisig)
        transaction = PublicKey(transaction)
        try:
            proposal = self.service.get_multisig_transaction(transaction)
        except ProgramError as e:
            raise ValidationError("Account %s: %s" % (transaction, e.msg))
        if proposal.multisig != multisig:
            raise ValidationError("Transaction %s belongs to multisig %s" % (transaction, proposal.multisig))
        if proposal.did_execute:
            raise ValidationError("Transaction %s has already been executed" % transaction)

        summary = OrderedDict([
            ('multisig', str(multisig)),
            ('transaction', str(transaction)),
            ('program_id', str(proposal.program_id)),
            ('approvals', proposal.approvals),
        ])
        amount = None
        if proposal.program_id == TOKEN_PROGRAM and len(proposal.accounts) >= 3:
            try:
                amount = unpack_token_transfer(proposal.data)
            except ProgramError:
                amount = None
        if amount is not None:
            recorded_source = proposal.accounts[0].pubkey
            recorded_destination = proposal.accounts[1].pubkey
            if source is not None and PublicKey(source) != recorded_source:
                raise ValidationError("Source %s does not match source %s of transaction" %
                                      (source, recorded_source))
            if destination is not None and PublicKey(destination) != recorded_destination:
                raise ValidationError("Destination %s does not match destination %s of transaction" %
                                      (destination, recorded_destination))
            decimals = self.service.get_token_account(recorded_source).decimals
            summary['source'] = str(recorded_source)
            summary['destination'] = str(recorded_destination)
            summary['amount'] = str(amount_to_ui_amount(amount, decimals))
        elif source is not None or destination is not None:
            raise ValidationError("Transaction %s is not a token transfer" % transaction)

        signer = self.signer_address(multisig)
        remaining = [AccountMeta(a.pubkey, is_signer=False, is_writable=a.is_writable) for a in proposal.accounts]
        remaining.append(AccountMeta(proposal.program_id, is_signer=False, is_writable=False))
        ix = multisig_execute_transaction(self.program_id, multisig, signer, transaction, remaining)
        return OperationPlan('execute-transaction', [ix], payer, summary=summary)

    def show_multisig(self, address):
        """
        Read multisig account and return its owners and threshold

        :return OrderedDict:
        """
        address = PublicKey(address)
        try:
            account = self.service.get_multisig(address)
        except ProgramError as e:
            raise ValidationError("Account %s: %s" % (address, e.msg))
        return OrderedDict([
            ('multisig', str(address)),
            ('multisig_signer', str(self.signer_address(address))),
            ('owners', [str(o) for o in account.owners]),
            ('threshold', account.threshold),
            ('owner_set_seqno', account.owner_set_seqno),
        ])

    def show_transaction(self, address):
        """
        Read proposed transaction and return its instruction and the owners which approved it

        :return OrderedDict:
        """
        address = PublicKey(address)
        try:
            proposal = self.service.get_multisig_transaction(address)
            account = self.service.get_multisig(proposal.multisig)
        except ProgramError as e:
            raise ValidationError("Account %s: %s" % (address, e.msg))
        approved = [str(o) for o, s in zip(account.owners, proposal.signers) if s]
        info = OrderedDict([
            ('transaction', str(address)),
            ('multisig', str(proposal.multisig)),
            ('program_id', str(proposal.program_id)),
            ('accounts', [str(a.pubkey) for a in proposal.accounts]),
            ('data', proposal.data.hex()),
            ('approved_by', approved),
            ('approvals', '%d of %d required' % (len(approved), account.threshold)),
            ('executed', proposal.did_execute),
        ])
        if proposal.owner_set_seqno != account.owner_set_seqno:
            info['stale'] = 'owners changed after this transaction was proposed'
        return info


def sign_transport(transport, signer):
    """
    Sign the message in a transport string

    :param transport: Base64 transport string
    :type transport: str
    :param signer: Signer which must be one of the required signers of the message
    :type signer: Signer

    :return Signature:
    """
    message = decode_transport(transport)
    pubkey = signer.public_key()
    if pubkey not in message.signers():
        raise ValidationError("%s is not a required signer of this transaction" % pubkey)
    return signer.sign(message.serialize())


def submit_transaction(service, transport, signatures):
    """
    Combine message and signatures into a transaction and submit it.

    Signatures must be given in the order of the required signers of the message. Each signature is verified
    before anything is sent. For messages anchored on a durable nonce the nonce account is read first, if the
    nonce has advanced the transaction can never be valid and is not sent.

    :param service: Service connected to the cluster
    :type service: Service
    :param transport: Base64 transport string
    :type transport: str
    :param signatures: Base58 signatures in signer order
    :type signatures: list of str

    :return str: Transaction id
    """
    message = decode_transport(transport)
    sigs = []
    for n, sig in enumerate(signatures):
        try:
            sigs.append(Signature.parse(sig))
        except BKeyError as e:
            raise MalformedTransport("Signature %d is invalid: %s" % (n, e.msg))
    signers = message.signers()
    if len(sigs) != len(signers):
        raise SubmissionError("Transaction requires %d signatures, %d given" % (len(signers), len(sigs)))
    t = Transaction(message, sigs)
    raw_message = message.serialize()
    for n, (pubkey, sig) in enumerate(zip(signers, sigs)):
        if not sig.verify(pubkey, raw_message):
            raise MalformedTransport("Signature %d does not match signer %s" % (n, pubkey))

    nonce_account = message.nonce_account()
    if nonce_account is not None:
        nonce = service.get_nonce(nonce_account)
        if nonce.nonce != message.recent_blockhash:
            raise SubmissionError("Nonce of account %s has advanced from %s to %s, create a new transaction" %
                                  (nonce_account, b58encode(message.recent_blockhash), nonce.nonce_str))
    return service.send_and_confirm_transaction(t)
