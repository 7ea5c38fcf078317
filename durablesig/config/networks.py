# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Cluster Definitions
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

CLUSTER_MAINNET = 'mainnet'
CLUSTER_TESTNET = 'testnet'
CLUSTER_DEVNET = 'devnet'
CLUSTER_LOCALNET = 'localnet'
CLUSTERS = {
    CLUSTER_MAINNET: {
        'description': 'Solana Mainnet Beta',
        'url': 'https://api.mainnet-beta.solana.com',
        'aliases': ['mainnet-beta', 'm'],
    },
    CLUSTER_TESTNET: {
        'description': 'Solana Testnet',
        'url': 'https://api.testnet.solana.com',
        'aliases': ['t'],
    },
    CLUSTER_DEVNET: {
        'description': 'Solana Devnet',
        'url': 'https://api.devnet.solana.com',
        'aliases': ['d'],
    },
    CLUSTER_LOCALNET: {
        'description': 'Local test validator',
        'url': 'http://127.0.0.1:8899',
        'aliases': ['localhost', 'l'],
    },
}


def cluster_url(cluster):
    """
    Get JSON-RPC url for a cluster name or alias. Urls are returned unchanged.

    >>> cluster_url('mainnet-beta')
    'https://api.mainnet-beta.solana.com'
    >>> cluster_url('http://10.0.0.5:8899')
    'http://10.0.0.5:8899'

    :param cluster: Cluster name, alias or url
    :type cluster: str

    :return str:
    """
    if cluster.startswith('http://') or cluster.startswith('https://'):
        return cluster
    name = cluster.lower()
    for cn, cv in CLUSTERS.items():
        if name == cn or name in cv['aliases']:
            return cv['url']
    raise ValueError("Unknown cluster '%s', use one of %s or an url" % (cluster, ', '.join(CLUSTERS)))
