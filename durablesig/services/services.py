# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    SERVICES - Read accounts from and send transactions to a Solana cluster
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
import time
from decimal import Decimal, InvalidOperation
from durablesig.programs import *
from durablesig.services.baseclient import ClientError
from durablesig.services.solana import SolanaClient

_logger = logging.getLogger(__name__)

COMMITMENT_LEVELS = ['processed', 'confirmed', 'finalized']


class ServiceError(DurableSigError):
    """
    Unexpected response or connection problem with the node
    """


class NotFound(ServiceError):
    """
    Requested account does not exist on chain
    """
    log_level = logging.WARNING


class SubmissionError(ServiceError):
    """
    Transaction could not be submitted or failed on chain
    """


class TokenAccount(object):
    """
    SPL token account as returned by the node in jsonParsed encoding
    """

    def __init__(self, address, mint, owner, amount, decimals, ui_amount_string):
        self.address = PublicKey(address)
        self.mint = PublicKey(mint)
        self.owner = PublicKey(owner)
        self.amount = int(amount)
        self.decimals = int(decimals)
        self.ui_amount_string = ui_amount_string

    def __repr__(self):
        return "<TokenAccount(%s, mint=%s, balance=%s)>" % (self.address, self.mint, self.ui_amount_string)

    @property
    def balance(self):
        """
        Balance in token units, exact

        :return Decimal:
        """
        return Decimal(self.ui_amount_string)


class Service(object):
    """
    Connect to a Solana cluster to read account state and submit transactions.

    Responses are converted to domain objects, node errors are raised as :class:`ServiceError` or one of its
    subclasses. Nothing is cached: every call asks the node again.

    >>> srv = Service('localnet')
    >>> srv.url
    'http://127.0.0.1:8899'
    """

    def __init__(self, cluster=DEFAULT_CLUSTER, timeout=TIMEOUT_REQUESTS, commitment=DEFAULT_COMMITMENT,
                 confirm_timeout=CONFIRM_TIMEOUT, confirm_interval=CONFIRM_INTERVAL):
        """
        Create service object for a cluster

        :param cluster: Cluster name (mainnet, testnet, devnet, localnet) or JSON-RPC url
        :type cluster: str
        :param timeout: Timeout for each request in seconds
        :type timeout: int
        :param commitment: Commitment level used for reads and confirmation
        :type commitment: str
        :param confirm_timeout: Seconds to wait for confirmation of a submitted transaction
        :type confirm_timeout: int
        :param confirm_interval: Seconds between confirmation status requests
        :type confirm_interval: float
        """
        if commitment not in COMMITMENT_LEVELS:
            raise ServiceError("Unknown commitment level '%s', use one of %s" %
                               (commitment, ', '.join(COMMITMENT_LEVELS)))
        try:
            self.client = SolanaClient(cluster, timeout)
        except ValueError as e:
            raise ServiceError(str(e))
        self.cluster = cluster
        self.url = self.client.base_url
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self.confirm_interval = confirm_interval

    def __repr__(self):
        return "<Service(%s)>" % self.url

    def _execute(self, method, *arguments):
        try:
            return getattr(self.client, method)(*arguments)
        except ClientError as e:
            raise ServiceError("Request to %s failed: %s" % (self.url, e.msg))

    def get_minimum_balance_for_rent_exemption(self, size):
        """
        Minimum lamports for an account of given size to be rent exempt

        :param size: Account data size in bytes
        :type size: int

        :return int:
        """
        return int(self._execute('getminimumbalanceforrentexemption', size, self.commitment))

    def get_account_data(self, address):
        """
        Raw data of an account

        :param address: Account address
        :type address: PublicKey, str

        :return bytes:
        """
        value = self._execute('getaccountinfo', address, 'base64', self.commitment)
        if value is None:
            raise NotFound("Account %s not found" % address)
        try:
            return base64.b64decode(value['data'][0])
        except (KeyError, IndexError, TypeError, binascii.Error) as e:
            raise ServiceError("Unexpected account data for %s: %s" % (address, e))

    def get_token_account(self, address):
        """
        Read SPL token account: mint, owner and balance

        :param address: Token account address
        :type address: PublicKey, str

        :return TokenAccount:
        """
        value = self._execute('getaccountinfo', address, 'jsonParsed', self.commitment)
        if value is None:
            raise NotFound("Token account %s not found" % address)
        data = value.get('data')
        if not isinstance(data, dict) or data.get('parsed', {}).get('type') != 'account':
            raise ServiceError("Account %s is not a token account" % address)
        info = data['parsed']['info']
        try:
            token_amount = info['tokenAmount']
            return TokenAccount(address, info['mint'], info['owner'], token_amount['amount'],
                                token_amount['decimals'], token_amount['uiAmountString'])
        except (KeyError, InvalidOperation) as e:
            raise ServiceError("Unexpected token account data for %s: %s" % (address, e))

    def get_multisig(self, address):
        """
        Read multisig account

        :return MultisigAccount:
        """
        return MultisigAccount.parse(self.get_account_data(address))

    def get_multisig_transaction(self, address):
        """
        Read proposed multisig transaction

        :return TransactionAccount:
        """
        return TransactionAccount.parse(self.get_account_data(address))

    def get_nonce(self, nonce_account):
        """
        Read durable nonce account

        :param nonce_account: Nonce account address
        :type nonce_account: PublicKey, str

        :return NonceAccount:
        """
        try:
            return NonceAccount.parse(self.get_account_data(nonce_account))
        except ProgramError as e:
            raise ServiceError("Could not read nonce account %s: %s" % (nonce_account, e.msg))

    def get_latest_blockhash(self):
        """
        :return bytes:
        """
        value = self._execute('getlatestblockhash', self.commitment)
        return to_hash(value['blockhash'])

    def send_transaction(self, transaction):
        """
        Push signed transaction to the node. The node simulates the transaction first and rejects it on errors.

        :param transaction: Fully signed transaction
        :type transaction: Transaction

        :return str: Transaction id
        """
        try:
            txid = self.client.sendtransaction(transaction.as_base64(), False, self.commitment)
        except ClientError as e:
            raise SubmissionError("Transaction rejected by node: %s" % e.msg)
        _logger.info("Transaction %s sent to %s" % (txid, self.url))
        return txid

    def confirm_transaction(self, txid):
        """
        Wait until transaction reaches the configured commitment level

        :param txid: Transaction id
        :type txid: str

        :return str: Commitment level reached
        """
        target = COMMITMENT_LEVELS.index(self.commitment)
        deadline = time.time() + self.confirm_timeout
        while True:
            statuses = self._execute('getsignaturestatuses', [txid])
            status = statuses[0] if statuses else None
            if status:
                if status.get('err'):
                    raise SubmissionError("Transaction %s failed: %s" % (txid, status['err']))
                level = status.get('confirmationStatus') or 'processed'
                if level in COMMITMENT_LEVELS and COMMITMENT_LEVELS.index(level) >= target:
                    _logger.info("Transaction %s reached commitment %s" % (txid, level))
                    return level
            if time.time() >= deadline:
                raise SubmissionError("Transaction %s not confirmed within %d seconds" %
                                      (txid, self.confirm_timeout))
            time.sleep(self.confirm_interval)

    def send_and_confirm_transaction(self, transaction):
        txid = self.send_transaction(transaction)
        self.confirm_transaction(txid)
        return txid
