# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    MAIN - Load configs, initialize logging
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

# Do not remove any of the imports below, used by other files
import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from durablesig.config.config import *


# Initialize logging
logger = logging.getLogger('durablesig')
logger.setLevel(LOGLEVEL)

if ENABLE_DURABLESIG_LOGGING:
    handler = RotatingFileHandler(str(DSIG_LOG_FILE), maxBytes=100 * 1024 * 1024, backupCount=2)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(funcName)s(%(lineno)d) %(message)s',
                                  datefmt='%Y/%m/%d %H:%M:%S')
    handler.setFormatter(formatter)
    handler.setLevel(LOGLEVEL)
    logger.addHandler(handler)

    _logger = logging.getLogger(__name__)
    logger.info('WELCOME TO DURABLESIG - OFFLINE SOLANA MULTISIG TOOLKIT')
    logger.info('Version: %s' % DURABLESIG_VERSION)
    logger.info('Read config from: %s' % DSIG_CONFIG_FILE)
    logger.info('Logging to: %s' % DSIG_LOG_FILE)
    logger.info('Directory for data files: %s' % DSIG_DATA_DIR)


class DurableSigError(Exception):
    """
    Base class for all errors raised by this library. Errors are logged when created, the command line tools
    print the message and exit with a non-zero status.
    """
    log_level = logging.ERROR

    def __init__(self, msg=''):
        self.msg = msg
        logging.getLogger(self.__class__.__module__).log(self.log_level, msg)

    def __str__(self):
        return self.msg
