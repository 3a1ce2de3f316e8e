#!/usr/bin/env python3
"""Command-line utility for ODMirror."""

import argparse
import sys
from pathlib import Path

import requests

from odmirror.auth import CredentialRefresher
from odmirror.config import ACCOUNTS, Config
from odmirror.exceptions import FolderCreationError, OneDriveError
from odmirror.logging_config import setup_logging
from odmirror.onedrive_client import OneDriveClient
from odmirror.retry import RetryPolicy
from odmirror.sync import MirrorSync
from odmirror.transport import DriveTransport
from odmirror.upload import UploadSessionManager
from odmirror.utils import format_size
from odmirror.validators import ValidationError, validate_config_value


def build_client(config: Config, account: str) -> OneDriveClient:
    """Create a client for one account from its stored token.

    The token is checked (and refreshed if it expired) before the client is
    returned, so a dead login is reported before any work starts.

    Raises:
        ValueError: If the account has no token
        AuthenticationError: If the token cannot be refreshed
    """
    token = config.load_token(account)
    if not token:
        raise ValueError(f"No token for the {account} account in {config.token_dir}")

    def persist(token_data):
        config.save_token(account, token_data)

    credentials = CredentialRefresher(config.client_id, token, config.token_url, on_refresh=persist)
    credentials.access_token()
    return OneDriveClient(DriveTransport(credentials, config.api_base), account)


def option_or_config(key: str, value, default):
    """Validate a command-line override the same way ``config --set`` does.

    Raises:
        ValueError: If the override is invalid
    """
    if value is None:
        return default
    try:
        return validate_config_value(key, value)
    except ValidationError as e:
        raise ValueError(f"{key}: {e}")


def cmd_sync(args):
    """Mirror the source tree into the destination."""
    config = Config(args.config_dir)
    setup_logging(args.log_level or config.log_level, config.log_path)

    try:
        workers = option_or_config('workers', args.workers, config.workers)
        source_path = option_or_config('source_path', args.source, config.source_path)
        dest_path = option_or_config('dest_path', args.dest, config.dest_path)
        # 0 retries forever
        max_attempts = option_or_config('max_upload_attempts', args.max_attempts,
                                        config.max_upload_attempts) or None
        policy = RetryPolicy(max_attempts=max_attempts, delay=config.retry_delay)

        source = build_client(config, 'source')
        destination = build_client(config, 'destination')
        uploader = UploadSessionManager(source, config.chunk_size, config.max_resume_attempts)
    except (ValueError, OneDriveError) as e:
        print(f"Error: {e}")
        return 1
    except requests.exceptions.RequestException as e:
        print(f"Error: cannot reach the token endpoint: {e}")
        return 1

    mirror = MirrorSync(source, destination, uploader, policy)
    try:
        report = mirror.sync(source_path, dest_path, workers)
    except FolderCreationError as e:
        print(f"✗ Cannot prepare destination: {e}")
        return 1
    except OneDriveError as e:
        print(f"✗ Sync aborted: {e}")
        return 1
    except KeyboardInterrupt:
        print("Interrupted")
        return 130

    print(f"Uploaded: {report.uploaded}  Already synced: {report.already_synced}  "
          f"Failed: {report.failed}  Folders: {report.folders}")
    for job in report.failed_jobs:
        print(f"✗ {job.dest_path}")
    return 0 if report.ok else 1


def cmd_list(args):
    """List a remote folder."""
    config = Config(args.config_dir)
    setup_logging(args.log_level or config.log_level)

    try:
        client = build_client(config, args.account)
    except (ValueError, OneDriveError) as e:
        print(f"Error: {e}")
        return 1
    except requests.exceptions.RequestException as e:
        print(f"Error: cannot reach the token endpoint: {e}")
        return 1

    items = client.list_children(args.path)
    print(f"\n{args.account}:{args.path} ({len(items)} items):")
    print("=" * 60)
    for item in items:
        if item.is_folder:
            print(f"{item.name + '/':40s} {str(item.child_count) + ' items':>15s}")
        else:
            print(f"{item.name:40s} {format_size(item.size):>15s}")
    return 0


def cmd_config(args):
    """Configure ODMirror."""
    config = Config(args.config_dir)

    if args.list:
        print("Current Configuration:")
        print("=" * 40)
        for key in Config.DEFAULTS:
            print(f"{key} = {config.get(key)}")
        for account in ACCOUNTS:
            state = "✓ present" if config.load_token(account) else "✗ missing"
            print(f"{account} token: {state}")
        return 0

    if args.set:
        status = 0
        for item in args.set:
            if '=' not in item:
                print(f"Error: Invalid format '{item}'. Use key=value")
                status = 1
                continue

            key, value = item.split('=', 1)
            try:
                config.set(key, value)
            except ValueError as e:
                print(f"Error: {e}")
                status = 1
                continue
            print(f"✓ Set {key} = {config.get(key)}")

        return status

    print("Use --list to view config or --set key=value to change config")
    return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='ODMirror - mirror a OneDrive folder tree into another account'
    )
    parser.add_argument('--config-dir', type=Path, default=None,
                        help='Configuration directory (default: ~/.config/odmirror)')
    parser.add_argument('--log-level', help='Override the configured log level')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    sync_parser = subparsers.add_parser('sync', help='Mirror source into destination')
    sync_parser.add_argument('--source', help='Source folder path')
    sync_parser.add_argument('--dest', help='Destination folder path')
    sync_parser.add_argument('--workers', type=int, help='Concurrent uploads')
    sync_parser.add_argument('--max-attempts', type=int,
                             help='Upload attempts per file (0 retries forever)')
    sync_parser.set_defaults(func=cmd_sync)

    list_parser = subparsers.add_parser('list', help='List a remote folder')
    list_parser.add_argument('--account', choices=ACCOUNTS, default='source')
    list_parser.add_argument('path', nargs='?', default='/')
    list_parser.set_defaults(func=cmd_list)

    config_parser = subparsers.add_parser('config', help='Configure ODMirror')
    config_parser.add_argument('--list', action='store_true', help='List configuration')
    config_parser.add_argument('--set', nargs='+', help='Set config (key=value)')
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
