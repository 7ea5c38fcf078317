# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Solana JSON-RPC client
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

import logging
from durablesig.services.baseclient import BaseClient, ClientError
from durablesig.config.networks import cluster_url

PROVIDERNAME = 'solana'

_logger = logging.getLogger(__name__)


class SolanaClient(BaseClient):
    """
    Thin wrapper around the JSON-RPC methods of a Solana node. Methods return the 'result' field of the response,
    error objects are raised as ClientError.
    """

    def __init__(self, cluster, *args):
        super(self.__class__, self).__init__(PROVIDERNAME, cluster_url(cluster), *args)
        self.request_id = 0

    def compose_request(self, method, params=None):
        self.request_id += 1
        variables = {
            'jsonrpc': '2.0',
            'id': self.request_id,
            'method': method,
            'params': params or [],
        }
        res = self.request(variables=variables)
        if not isinstance(res, dict):
            raise ClientError("Unexpected response from %s for %s: %s" % (self.provider, method, res))
        if res.get('error'):
            error = res['error']
            if isinstance(error, dict):
                raise ClientError("%s failed: %s" % (method, error.get('message', error)), error.get('code'),
                                  error.get('data'))
            raise ClientError("%s failed: %s" % (method, error))
        if 'result' not in res:
            raise ClientError("No result in response from %s for %s" % (self.provider, method))
        return res['result']

    def getminimumbalanceforrentexemption(self, size, commitment=None):
        params = [size]
        if commitment:
            params.append({'commitment': commitment})
        return self.compose_request('getMinimumBalanceForRentExemption', params)

    def getaccountinfo(self, address, encoding='base64', commitment=None):
        options = {'encoding': encoding}
        if commitment:
            options['commitment'] = commitment
        return self.compose_request('getAccountInfo', [str(address), options])['value']

    def getlatestblockhash(self, commitment=None):
        params = [{'commitment': commitment}] if commitment else []
        return self.compose_request('getLatestBlockhash', params)['value']

    def sendtransaction(self, rawtx_base64, skip_preflight=False, commitment=None):
        options = {'encoding': 'base64', 'skipPreflight': skip_preflight}
        if commitment:
            options['preflightCommitment'] = commitment
        return self.compose_request('sendTransaction', [rawtx_base64, options])

    def getsignaturestatuses(self, signatures):
        return self.compose_request('getSignatureStatuses', [[str(s) for s in signatures],
                                                             {'searchTransactionHistory': False}])['value']
