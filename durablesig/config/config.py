# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    CONFIG - Configuration settings
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

import os
import platform
import configparser
from pathlib import Path
from datetime import datetime

# General defaults
LOGLEVEL = 'WARNING'


# File locations
DSIG_CONFIG_FILE = ''
DSIG_INSTALL_DIR = Path(__file__).parents[1]
DSIG_DATA_DIR = ''
DSIG_LOG_FILE = ''

# Main
ENABLE_DURABLESIG_LOGGING = True

# Services
TIMEOUT_REQUESTS = 10
DEFAULT_CLUSTER = 'devnet'
DEFAULT_COMMITMENT = 'confirmed'
CONFIRM_TIMEOUT = 60
CONFIRM_INTERVAL = 2

# Well-known program and sysvar addresses
SYSTEM_PROGRAM_ID = '11111111111111111111111111111111'
TOKEN_PROGRAM_ID = 'TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA'
SYSVAR_RENT_ID = 'SysvarRent111111111111111111111111111111111'
SYSVAR_RECENT_BLOCKHASHES_ID = 'SysvarRecentB1ockHashes11111111111111111111'

# Multisig program (Coral multisig). Devnet deployment: msigUdDBsR4zSUYqYEDrc1LcgtmuSDDM7KxpRUXNC6U
DEFAULT_MULTISIG_PROGRAM_ID = 'AAHT26ecV3FEeFmL2gDZW6FfEqjPkghHbAkNZGqwT8Ww'
MULTISIG_ACCOUNT_SIZE = 500
TRANSACTION_ACCOUNT_SIZE = 500

# Keys
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
PDA_MARKER = b'ProgramDerivedAddress'
SOLANA_BIP44_COINTYPE = 501

# Nonce accounts
NONCE_ACCOUNT_SIZE = 80
NONCE_STATE_INITIALIZED = 1

# Ledger hardware wallet, Solana app
LEDGER_VENDOR_ID = 0x2c97
LEDGER_CLA = 0xe0
LEDGER_INS_GET_PUBKEY = 0x05
LEDGER_INS_SIGN_MESSAGE = 0x06
LEDGER_P1_NON_CONFIRM = 0x00
LEDGER_P1_CONFIRM = 0x01
LEDGER_P2_EXTEND = 0x01
LEDGER_P2_MORE = 0x02
LEDGER_MAX_CHUNK_SIZE = 255
LEDGER_STATUS_MESSAGES = {
    0x6985: "Operation rejected by the user on the Ledger device",
    0x6d00: "Solana app is not open on the Ledger device",
    0x6e00: "Solana app is not open on the Ledger device",
    0x6e01: "Solana app is not open on the Ledger device",
    0x5515: "Ledger device is locked, please unlock it",
    0x6b0c: "Ledger device is locked, please unlock it",
    0x6a80: "Invalid data sent to the Ledger device, is blind signing enabled in the Solana app?",
}


def read_config():
    config = configparser.ConfigParser()

    def config_get(section, var, fallback, is_boolean=False):
        try:
            if is_boolean:
                val = config.getboolean(section, var, fallback=fallback)
            else:
                val = config.get(section, var, fallback=fallback)
            return val
        except Exception:
            return fallback

    global DSIG_INSTALL_DIR, DSIG_DATA_DIR, DSIG_CONFIG_FILE
    global DSIG_LOG_FILE, LOGLEVEL, ENABLE_DURABLESIG_LOGGING
    global TIMEOUT_REQUESTS, DEFAULT_CLUSTER, DEFAULT_COMMITMENT, CONFIRM_TIMEOUT, CONFIRM_INTERVAL
    global DEFAULT_MULTISIG_PROGRAM_ID

    # Read settings from configuration file provided in OS environment or ~/.durablesig/ directory
    config_file_name = os.environ.get('DURABLESIG_CONFIG_FILE')
    if not config_file_name:
        DSIG_CONFIG_FILE = Path('~/.durablesig/config.ini').expanduser()
    else:
        DSIG_CONFIG_FILE = Path(config_file_name)
        if not DSIG_CONFIG_FILE.is_absolute():
            DSIG_CONFIG_FILE = Path(Path.home(), '.durablesig', DSIG_CONFIG_FILE)
        if not DSIG_CONFIG_FILE.exists():
            DSIG_CONFIG_FILE = Path(DSIG_INSTALL_DIR, 'data', config_file_name)
        if not DSIG_CONFIG_FILE.exists():
            raise IOError('DurableSig configuration file not found: %s' % str(DSIG_CONFIG_FILE))
    data = config.read(str(DSIG_CONFIG_FILE))
    DSIG_DATA_DIR = Path(config_get('locations', 'data_dir', fallback='~/.durablesig')).expanduser()

    # Log settings
    ENABLE_DURABLESIG_LOGGING = config_get("logs", "enable_logging", fallback=True, is_boolean=True)
    DSIG_LOG_FILE = Path(DSIG_DATA_DIR, config_get('logs', 'log_file', fallback='durablesig.log'))
    if ENABLE_DURABLESIG_LOGGING:
        DSIG_LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    LOGLEVEL = config_get('logs', 'loglevel', fallback=LOGLEVEL)

    # Service settings
    TIMEOUT_REQUESTS = int(config_get('common', 'timeout_requests', fallback=TIMEOUT_REQUESTS))
    DEFAULT_CLUSTER = config_get('common', 'default_cluster', fallback=DEFAULT_CLUSTER)
    DEFAULT_COMMITMENT = config_get('common', 'commitment', fallback=DEFAULT_COMMITMENT)
    CONFIRM_TIMEOUT = int(config_get('common', 'confirm_timeout', fallback=CONFIRM_TIMEOUT))
    CONFIRM_INTERVAL = float(config_get('common', 'confirm_interval', fallback=CONFIRM_INTERVAL))

    # Multisig program
    DEFAULT_MULTISIG_PROGRAM_ID = config_get('multisig', 'program_id', fallback=DEFAULT_MULTISIG_PROGRAM_ID)

    if not data:
        return False
    return True


# Write install log and copy default settings to the data directory if install.log is not found
def initialize_lib():
    global DSIG_INSTALL_DIR, DSIG_DATA_DIR, DURABLESIG_VERSION
    if not ENABLE_DURABLESIG_LOGGING:
        return
    instlogfile = Path(DSIG_DATA_DIR, 'install.log')
    if instlogfile.exists():
        return

    with instlogfile.open('w') as f:
        install_message = "DurableSig installed, check further logs in durablesig.log\n\n" \
                          "If you remove this file the default settings will be copied again.\n\n" \
                          "Installation parameters. Include this parameters when reporting bugs and issues:\n" \
                          "DurableSig version: %s\n" \
                          "Installation date : %s\n" \
                          "Python            : %s\n" \
                          "OS Version        : %s\n" \
                          "Platform          : %s\n" % \
                          (DURABLESIG_VERSION, datetime.now().isoformat(), platform.python_version(),
                           platform.version(), platform.platform())
        f.write(install_message)

    # Copy default settings file, never overwrite user settings
    from shutil import copyfile
    for file in Path(DSIG_INSTALL_DIR, 'data').iterdir():
        if file.suffix != '.ini' or Path(DSIG_DATA_DIR, file.name).exists():
            continue
        copyfile(str(file), Path(DSIG_DATA_DIR, file.name))


# Initialize library
read_config()
DURABLESIG_VERSION = Path(DSIG_INSTALL_DIR, 'config/VERSION').open().read().strip()
initialize_lib()
