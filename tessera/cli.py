"""
Tessera Command Line Interface.

Provides commands for creating the session key, issuing tokens and verifying them.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tessera import config
from tessera.binding import bearer_header, build_session_cookie, extract_transport_token
from tessera.codec import decode, encode
from tessera.errors import AuthRequestError, DecodeError, KeyStoreError, TesseraError
from tessera.keys import KeyStore, load_or_generate
from tessera.users import Scope, User, UserBuilder, UserExtractor


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def _load_keys(args: argparse.Namespace, create: bool = False) -> KeyStore:
    cipher_secret = config.get_cipher_secret()
    public_key = getattr(args, 'public_key', None)
    if public_key:
        if cipher_secret is None:
            raise KeyStoreError("Verifying with --public-key requires TESSERA_CIPHER_SECRET")
        return KeyStore.from_public_key_jwk(public_key, cipher_secret)
    if not create and not Path(args.key_file).exists():
        raise KeyStoreError(f"Key file not found: {args.key_file}")
    return load_or_generate(args.key_file, cipher_secret=cipher_secret)


def cmd_init(args: argparse.Namespace) -> int:
    """Create the session key file (or load the existing one) and print its public key."""
    try:
        keys = _load_keys(args, create=True)
        print(f"Session key: {args.key_file}")
        print("\n--- PUBLIC KEY (distribute to verifiers) ---")
        print(keys.public_key_jwk())
        return 0
    except (TesseraError, ValueError, OSError) as e:
        print(f"Error initializing session key: {e}", file=sys.stderr)
        return 1


def cmd_issue(args: argparse.Namespace) -> int:
    """Issue a session token for a user."""
    names = list(args.scope)
    if args.admin:
        names.append(Scope.ADMIN.name)
    user = User(username=args.username, scope=Scope.union(Scope[name] for name in names))

    try:
        keys = _load_keys(args, create=True)
        token = encode(user, UserExtractor(), keys)
    except (TesseraError, ValueError, OSError) as e:
        print(f"Error issuing token: {e}", file=sys.stderr)
        return 1

    if args.cookie:
        print(f"Set-Cookie: {build_session_cookie(token)}")
    elif args.raw:
        print(token)
    else:
        print(bearer_header(token))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a session token and print the user it carries."""
    token = args.token.strip()
    try:
        if token.startswith(config.AUTH_HEADER_SCHEME + " "):
            token = extract_transport_token({config.AUTH_HEADER_NAME: token})
        keys = _load_keys(args)
        user = decode(token, UserBuilder(), keys)
    except (DecodeError, AuthRequestError) as e:
        if args.json:
            print(json.dumps({"valid": False, "error": e.code}))
        else:
            print(f"INVALID ({e.code}): {e}")
        return 1
    except (TesseraError, ValueError, OSError) as e:
        print(f"Error verifying token: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps({"valid": True, **user.to_dict()}))
    else:
        print("VALID")
        print(f"   Username: {user.username}")
        print(f"   Scopes:   {', '.join(m.name for m in user.scope.members()) or '-'}")
    return 0


def cmd_public_key(args: argparse.Namespace) -> int:
    """Print the public key as a JWK."""
    try:
        print(_load_keys(args).public_key_jwk())
        return 0
    except (TesseraError, ValueError, OSError) as e:
        print(f"Error loading session key: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='tessera',
        description='Tessera CLI - signed, partially encrypted session tokens'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')
    parser.add_argument('--key-file', default=config.KEY_FILE, help='Session key PEM file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # init command
    subparsers.add_parser('init', help='Create the session key file')

    # issue command
    p_issue = subparsers.add_parser('issue', help='Issue a session token for a user')
    p_issue.add_argument('username', help='Username carried in the visible segment')
    p_issue.add_argument('--admin', action='store_true', help='Grant the ADMIN scope')
    p_issue.add_argument(
        '--scope', action='append', default=[], choices=[m.name for m in Scope if m.value],
        help='Grant a scope (repeatable)'
    )
    output = p_issue.add_mutually_exclusive_group()
    output.add_argument('--raw', action='store_true', help='Print the bare token')
    output.add_argument('--cookie', action='store_true', help='Print a Set-Cookie header')

    # verify command
    p_verify = subparsers.add_parser('verify', help='Verify a session token')
    p_verify.add_argument('token', help="The token, optionally prefixed with 'Bearer '")
    p_verify.add_argument('--public-key', help='Public key (JWK JSON); needs TESSERA_CIPHER_SECRET')
    p_verify.add_argument('--json', action='store_true', help='Output as JSON')

    # public-key command
    subparsers.add_parser('public-key', help='Print the public key (JWK)')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if args.command == 'init':
        return cmd_init(args)
    elif args.command == 'issue':
        return cmd_issue(args)
    elif args.command == 'verify':
        return cmd_verify(args)
    elif args.command == 'public-key':
        return cmd_public_key(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
