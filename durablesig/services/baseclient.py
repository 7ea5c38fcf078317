# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    Base Client
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

import requests
import json
from durablesig.main import *

_logger = logging.getLogger(__name__)


class ClientError(DurableSigError):
    """
    Error connecting to a node or error response from a node. For JSON-RPC errors the code and data of the error
    object are available as attributes.
    """
    log_level = logging.INFO

    def __init__(self, msg='', code=None, data=None):
        self.code = code
        self.data = data
        super(ClientError, self).__init__(msg)


class BaseClient(object):

    def __init__(self, provider, base_url, timeout=TIMEOUT_REQUESTS):
        self.provider = provider
        self.base_url = base_url
        self.resp = None
        self.timeout = timeout

    def request(self, url_path='', variables=None, method='post', secure=True):
        url = self.base_url + url_path
        if not url or not self.base_url:
            raise ClientError("No (complete) url provided: %s" % url)
        headers = {
            'User-Agent': 'DurableSig/%s' % DURABLESIG_VERSION,
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        log_url = url if '@' not in url else url.split('@')[1]
        try:
            if method == 'get':
                _logger.info("Url get request %s" % log_url)
                self.resp = requests.get(url, params=variables, timeout=self.timeout, verify=secure,
                                         headers=headers)
            else:
                _logger.info("Url post request %s" % log_url)
                self.resp = requests.post(url, json=variables, timeout=self.timeout, verify=secure,
                                          headers=headers)
        except requests.exceptions.RequestException as e:
            raise ClientError("Error connecting to %s on url %s: %s" % (self.provider, log_url, e))

        resp_text = self.resp.text
        if len(resp_text) > 1000:
            resp_text = self.resp.text[:970] + '... truncated, length %d' % len(resp_text)
        _logger.debug("Response [%d] %s" % (self.resp.status_code, resp_text))
        if self.resp.status_code == 429:
            raise ClientError("Maximum number of requests reached for %s with url %s, response [%d] %s" %
                              (self.provider, log_url, self.resp.status_code, resp_text))
        elif not (self.resp.status_code == 200 or self.resp.status_code == 201):
            raise ClientError("Error connecting to %s on url %s, response [%d] %s" %
                              (self.provider, log_url, self.resp.status_code, resp_text))
        try:
            return json.loads(self.resp.text)
        except ValueError:
            raise ClientError("Invalid JSON response from %s: %s" % (self.provider, resp_text))
