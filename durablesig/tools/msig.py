# -*- coding: utf-8 -*-
#
#    DurableSig - Offline Solana Multisig Toolkit
#    MSIG - Command line tool to create, approve, sign and submit multisig transactions
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

import sys
import os
import argparse
from durablesig.multisig import *
from durablesig.config.config import DEFAULT_CLUSTER, DEFAULT_MULTISIG_PROGRAM_ID


# Show all errors in simple format without tracelog
def exception_handler(exception_type, exception, traceback):
    print("%s: %s" % (exception_type.__name__, exception))


sys.excepthook = exception_handler


def _add_build_arguments(parser):
    parser.add_argument('--signer', metavar='PUBKEY',
                        help="Fee payer and nonce authority. Default is the public key of the local signer")
    parser.add_argument('--nonce-account', metavar='PUBKEY', required=True,
                        help="Durable nonce account to anchor the transaction on")
    parser.add_argument('--nonce', metavar='NONCE',
                        help="Current value of the nonce account. Read from the cluster if omitted")
    parser.add_argument('--submit', action='store_true',
                        help="Sign with the local signer and submit directly. Only possible if no other "
                             "signatures are required")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='DurableSig offline Solana multisig tool')
    parser.add_argument('--cluster', '-c', default=DEFAULT_CLUSTER,
                        help="Cluster to use: mainnet, testnet, devnet, localnet or a JSON-RPC url. "
                             "Default is %s" % DEFAULT_CLUSTER)
    parser.add_argument('--program-id', default=DEFAULT_MULTISIG_PROGRAM_ID,
                        help="Address of the multisig program")
    parser.add_argument('--private-key', '-k', metavar='KEYFILE',
                        help="JSON key file of the local signer")
    parser.add_argument('--ledger', action='store_true',
                        help="Use a Ledger hardware wallet as signer")
    parser.add_argument('--account-number', '-n', type=int, default=None,
                        help="Account number of the key on the Ledger device: m/44'/501'/<account-number>', default 0")
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Quiet mode, only the transport string, signature or transaction id is written')

    subparsers = parser.add_subparsers(dest='subparser_name')
    parser_cm = subparsers.add_parser('create-multisig', description="Create a new multisig account")
    parser_cm.add_argument('--signers', nargs='+', required=True, metavar='PUBKEY',
                           help="Public keys of the owners of the multisig")
    parser_cm.add_argument('--threshold', type=int, required=True,
                           help="Number of approvals required to execute a transaction")
    _add_build_arguments(parser_cm)

    parser_ct = subparsers.add_parser('create-transaction', description="Propose a token transfer")
    parser_ct.add_argument('--multisig', required=True, metavar='PUBKEY', help="Multisig account")
    parser_ct.add_argument('--from', dest='source', required=True, metavar='PUBKEY',
                           help="Source token account, owned by the multisig signer")
    parser_ct.add_argument('--to', dest='destination', required=True, metavar='PUBKEY',
                           help="Destination token account")
    parser_ct.add_argument('--amount', required=True, help="Amount in token units, for instance 1.5")
    _add_build_arguments(parser_ct)

    parser_ap = subparsers.add_parser('approve', description="Approve a proposed transaction")
    parser_ap.add_argument('--multisig', required=True, metavar='PUBKEY', help="Multisig account")
    parser_ap.add_argument('--transaction', required=True, metavar='PUBKEY', help="Proposed transaction account")
    _add_build_arguments(parser_ap)

    parser_ex = subparsers.add_parser('execute-transaction', description="Execute an approved transaction")
    parser_ex.add_argument('--multisig', required=True, metavar='PUBKEY', help="Multisig account")
    parser_ex.add_argument('--transaction', required=True, metavar='PUBKEY', help="Proposed transaction account")
    parser_ex.add_argument('--from', dest='source', metavar='PUBKEY',
                           help="Expected source token account of the transfer")
    parser_ex.add_argument('--to', dest='destination', metavar='PUBKEY',
                           help="Expected destination token account of the transfer")
    _add_build_arguments(parser_ex)

    parser_sub = subparsers.add_parser('submit', description="Combine signatures with a transport string and "
                                                             "submit the transaction")
    parser_sub.add_argument('--transaction', required=True, metavar='TRANSPORT',
                            help="Base64 transport string")
    parser_sub.add_argument('--signatures', nargs='+', required=True, metavar='SIGNATURE',
                            help="Signatures in the order of the required signers")

    parser_sign = subparsers.add_parser('sign', description="Sign a transport string with the local signer")
    parser_sign.add_argument('--transaction', required=True, metavar='TRANSPORT',
                             help="Base64 transport string")

    parser_sm = subparsers.add_parser('show-multisig', description="Show owners and threshold of a multisig")
    parser_sm.add_argument('--multisig', required=True, metavar='PUBKEY', help="Multisig account")

    parser_st = subparsers.add_parser('show-transaction', description="Show a proposed transaction and its "
                                                                      "approvals")
    parser_st.add_argument('--transaction', required=True, metavar='PUBKEY', help="Proposed transaction account")

    args = parser.parse_args(argv)
    if not args.subparser_name:
        parser.error("Please specify a command")
    if args.account_number is not None and not args.ledger:
        parser.error("--account-number can only be used with --ledger")
    if args.ledger and args.private_key:
        parser.error("Use either --ledger or --private-key, not both")
    return args


def get_signer(args):
    if args.ledger:
        from durablesig.ledger import LedgerWallet, LedgerSigner
        account = args.account_number if args.account_number is not None else 0
        return LedgerSigner(LedgerWallet.discover(), DerivationPath(account=account))
    if args.private_key:
        return KeypairSigner.from_file(args.private_key)
    return None


def print_dict(info, output_to):
    for k, v in info.items():
        if isinstance(v, list):
            print("%s:" % k.replace('_', ' ').capitalize(), file=output_to)
            for item in v:
                print("  %s" % item, file=output_to)
        else:
            print("%s: %s" % (k.replace('_', ' ').capitalize(), v), file=output_to)


def build_plan(msig, args, payer):
    if args.subparser_name == 'create-multisig':
        return msig.create_multisig(payer, args.signers, args.threshold)
    elif args.subparser_name == 'create-transaction':
        return msig.create_transaction(payer, args.multisig, args.source, args.destination, args.amount)
    elif args.subparser_name == 'approve':
        return msig.approve(payer, args.multisig, args.transaction)
    elif args.subparser_name == 'execute-transaction':
        return msig.execute_transaction(payer, args.multisig, args.transaction, args.source, args.destination)
    raise ValidationError("Unknown command %s" % args.subparser_name)


def run_operation(args, service, signer, output_to):
    if args.signer:
        payer = PublicKey(args.signer)
    elif signer is not None:
        payer = signer.public_key()
    else:
        raise ValidationError("No fee payer, use --signer or specify a local signer with --private-key or --ledger")

    msig = Multisig(service, args.program_id)
    plan = build_plan(msig, args, payer)
    nonce = args.nonce
    if not nonce:
        nonce = service.get_nonce(args.nonce_account).nonce
    message = plan.message(args.nonce_account, nonce)
    t = plan.transaction(message)
    transport = encode_transport(message)

    print("%s" % plan.name.replace('-', ' ').upper(), file=output_to)
    print_dict(plan.summary, output_to)

    if args.submit:
        if signer is None:
            raise ValidationError("A local signer is required to submit, use --private-key or --ledger")
        if signer.is_interactive():
            print("Please check and approve the transaction on your Ledger device", file=output_to)
        t.sign([signer])
        missing = [str(pk) for pk, sig in zip(message.signers(), t.signatures) if sig.is_default]
        if missing:
            raise SubmissionError("Missing signatures of %s, sign offline and use the submit command" %
                                  ', '.join(missing))
        txid = submit_transaction(service, transport, [str(s) for s in t.signatures])
        print("Transaction submitted and confirmed, transaction id:", file=output_to)
        print(txid)
        return txid

    print("\nRequired signers, in order:", file=output_to)
    for n, (pk, sig) in enumerate(zip(message.signers(), t.signatures)):
        if sig.is_default:
            print("  [%d] %s" % (n, pk), file=output_to)
        else:
            print("  [%d] %s signature %s" % (n, pk, sig), file=output_to)
    print("\nTransport string:", file=output_to)
    print(transport)
    return transport


def run(argv=None):
    """
    Run command line arguments and return the transport string, signature or transaction id
    """
    args = parse_args(argv)
    output_to = open(os.devnull, 'w') if args.quiet else sys.stdout
    try:
        return run_command(args, output_to)
    finally:
        if output_to is not sys.stdout:
            output_to.close()


def run_command(args, output_to):
    service = Service(args.cluster)

    if args.subparser_name == 'submit':
        txid = submit_transaction(service, args.transaction, args.signatures)
        print("Transaction submitted and confirmed, transaction id:", file=output_to)
        print(txid)
        return txid

    if args.subparser_name == 'show-multisig':
        print_dict(Multisig(service, args.program_id).show_multisig(args.multisig), sys.stdout)
        return

    if args.subparser_name == 'show-transaction':
        print_dict(Multisig(service, args.program_id).show_transaction(args.transaction), sys.stdout)
        return

    signer = get_signer(args)
    try:
        if args.subparser_name == 'sign':
            if signer is None:
                raise ValidationError("No signer, use --private-key or --ledger")
            if not args.quiet:
                decode_transport(args.transaction).info()
            if signer.is_interactive():
                print("Please check and approve the transaction on your Ledger device", file=output_to)
            signature = sign_transport(args.transaction, signer)
            print("Signer: %s" % signer.public_key(), file=output_to)
            print("Signature:", file=output_to)
            print(signature)
            return str(signature)

        return run_operation(args, service, signer, output_to)
    finally:
        if signer is not None:
            signer.close()


def main(argv=None):
    run(argv)


if __name__ == '__main__':
    main()
