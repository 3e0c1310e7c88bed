#!/usr/bin/env python3
"""
Command-line access to the unified inbox.

Usage:
    python cli.py list --provider gmail --max 10
    python cli.py show --provider imap 4711
    python cli.py test --provider microsoft
    python cli.py authorize --provider gmail
    python cli.py exchange --provider gmail <code>
    python cli.py sample-config > ~/.config/unified_inbox/config.yaml

Environment:
    GOOGLE_*/MICROSOFT_* OAuth settings, IMAP_HOST/IMAP_USER/IMAP_PASS, and
    MAIL_CORE_* overrides. See `sample-config` for the file format.
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from auth.credentials import CredentialResolver
from auth.oauth import (
    exchange_google_code,
    exchange_microsoft_code,
    google_authorization_url,
    microsoft_authorization_url,
)
from core.accounts import JsonAccountStore
from core.config import Config, create_sample_config, load_config
from core.errors import ConfigurationMissing, ProviderError
from core.models import GMAIL, IMAP, MessageDetail, normalize_provider
from providers import get_message_detail, get_provider, list_messages, test_connection
from providers.base import EmailProvider

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def build_resolver(config: Config) -> CredentialResolver:
    """Create the credential resolver, with the account file if configured."""
    store = JsonAccountStore(config.accounts_file) if config.accounts_file else None
    return CredentialResolver(config, store=store)


def prepare(args: argparse.Namespace, config: Config):
    """Resolve the provider and credentials for a command."""
    provider_name = normalize_provider(args.provider or config.default_provider)
    resolver = build_resolver(config)
    creds = resolver.resolve(provider_name, account_id=args.account_id)
    if creds is None:
        raise ConfigurationMissing(
            f"No credentials found for {provider_name}. "
            f"Add an account to the accounts file or set the environment defaults.",
            provider=provider_name,
        )
    provider: EmailProvider = get_provider(
        provider_name,
        config,
        client=resolver.resolve_oauth_client(provider_name),
    )
    return provider, creds


def _print_summaries(messages, fmt: str) -> None:
    if fmt == "json":
        print(json.dumps([m.to_dict() for m in messages], indent=2))
        return
    if not messages:
        print("Inbox is empty.")
        return
    for msg in messages:
        marker = " " if msg.is_read in (True, None) else "*"
        print(f"{marker} {msg.id[:24]:<24}  {msg.date[:31]:<31}  {msg.sender[:32]:<32}  {msg.subject}")


def _print_detail(detail: MessageDetail, fmt: str) -> None:
    if fmt == "json":
        print(json.dumps(detail.to_dict(), indent=2))
        return
    print(f"From:    {detail.sender}")
    if detail.to:
        print(f"To:      {detail.to}")
    print(f"Date:    {detail.date}")
    print(f"Subject: {detail.subject}")
    print("")
    print(detail.body)


def cmd_list(args: argparse.Namespace, config: Config) -> int:
    """List the newest inbox messages."""
    provider, creds = prepare(args, config)
    max_results = args.max if args.max is not None else config.max_results
    messages = list_messages(provider, creds, max_results)
    _print_summaries(messages, args.format)
    return 0


def cmd_show(args: argparse.Namespace, config: Config) -> int:
    """Show a single message."""
    provider, creds = prepare(args, config)
    detail = get_message_detail(provider, creds, args.message_id)
    _print_detail(detail, args.format)
    return 0


def cmd_test(args: argparse.Namespace, config: Config) -> int:
    """Test the provider connection."""
    provider, creds = prepare(args, config)
    result = test_connection(provider, creds)
    if args.format == "json":
        print(json.dumps(asdict(result), indent=2))
    elif result.success:
        print(f"{provider.name}: connection OK")
    else:
        print(f"{provider.name}: connection failed ({result.kind}): {result.error}")
    return 0 if result.success else 1


def _oauth_client(args: argparse.Namespace, config: Config):
    provider_name = normalize_provider(args.provider or config.default_provider)
    if provider_name == IMAP:
        raise ConfigurationMissing("IMAP accounts do not use OAuth", provider=provider_name)
    client = build_resolver(config).resolve_oauth_client(provider_name)
    if client is None:
        raise ConfigurationMissing(
            f"No {provider_name} OAuth client configured (client_id / client_secret)",
            provider=provider_name,
        )
    return provider_name, client


def cmd_authorize(args: argparse.Namespace, config: Config) -> int:
    """Print the consent URL that starts the authorization-code flow."""
    provider_name, client = _oauth_client(args, config)
    if provider_name == GMAIL:
        url, _ = google_authorization_url(client, config.gmail, state=args.state)
    else:
        url = microsoft_authorization_url(client, config.outlook, state=args.state or "")
    print(url)
    return 0


def cmd_exchange(args: argparse.Namespace, config: Config) -> int:
    """
    Redeem an authorization code and print the resulting tokens.

    The refresh token is meant to be stored (e.g. in 1Password) and
    referenced from the config or accounts file.
    """
    provider_name, client = _oauth_client(args, config)
    if provider_name == GMAIL:
        tokens = exchange_google_code(args.code, client, config.gmail)
    else:
        tokens = exchange_microsoft_code(args.code, client, config.outlook)
    print(json.dumps({
        "provider": provider_name,
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
    }, indent=2))
    return 0


def cmd_sample_config(args: argparse.Namespace, config: Optional[Config]) -> int:
    """Print or write a sample configuration file."""
    path = Path(args.output).expanduser() if args.output else None
    sample = create_sample_config(path)
    if not path:
        print(sample)
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Unified inbox: list and read mail from Gmail, Outlook and IMAP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list --provider gmail --max 10
  %(prog)s list --provider imap --format json
  %(prog)s show --provider microsoft AAMkAGI2...
  %(prog)s test --provider imap
  %(prog)s authorize --provider microsoft
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to config file (default: search standard locations)",
    )

    # Provider options (shared across subcommands)
    provider_group = argparse.ArgumentParser(add_help=False)
    provider_group.add_argument(
        "--provider", "-p",
        choices=["gmail", "microsoft", "outlook", "imap"],
        help="Mail provider (default: default_provider from config)",
    )
    provider_group.add_argument(
        "--account-id",
        help="Stored account to use (default: primary account for the provider)",
    )
    provider_group.add_argument(
        "--format", "-f",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    list_parser = subparsers.add_parser(
        "list",
        parents=[provider_group],
        help="List the newest inbox messages",
    )
    list_parser.add_argument(
        "--max", "-m",
        type=int,
        help="Number of messages (1-50, default: max_results from config)",
    )
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser(
        "show",
        parents=[provider_group],
        help="Show one message as plain text",
    )
    show_parser.add_argument("message_id", help="Provider message id (IMAP: UID)")
    show_parser.set_defaults(func=cmd_show)

    test_parser = subparsers.add_parser(
        "test",
        parents=[provider_group],
        help="Test provider connection and credentials",
    )
    test_parser.set_defaults(func=cmd_test)

    oauth_group = argparse.ArgumentParser(add_help=False)
    oauth_group.add_argument(
        "--provider", "-p",
        choices=["gmail", "microsoft", "outlook"],
        help="OAuth provider (default: default_provider from config)",
    )

    authorize_parser = subparsers.add_parser(
        "authorize",
        parents=[oauth_group],
        help="Print the OAuth consent URL for connecting an account",
    )
    authorize_parser.add_argument("--state", help="Opaque state value echoed back to the redirect URI")
    authorize_parser.set_defaults(func=cmd_authorize)

    exchange_parser = subparsers.add_parser(
        "exchange",
        parents=[oauth_group],
        help="Exchange an authorization code for access/refresh tokens",
    )
    exchange_parser.add_argument("code", help="Authorization code from the redirect")
    exchange_parser.set_defaults(func=cmd_exchange)

    sample_parser = subparsers.add_parser(
        "sample-config",
        help="Print a sample configuration file",
    )
    sample_parser.add_argument("--output", "-o", help="Write to this path instead of stdout")
    sample_parser.set_defaults(func=cmd_sample_config)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "sample-config":
        return args.func(args, None)

    config = load_config(Path(args.config).expanduser() if args.config else None)
    if not args.verbose:
        logging.getLogger().setLevel(config.log_level.upper())

    try:
        return args.func(args, config)
    except ProviderError as e:
        logger.error(f"{args.command} failed ({e.kind}): {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
