#!/usr/bin/env python3
"""
Alt Text Generator
Fills in missing alt text for images in a CSV media catalog, one batch at a time.
"""

import argparse
import logging
import os
import secrets
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from alt_text_generator import AltTextGenerator
from audit_log import AuditLog
from config_handler import ConfigStore, DEFAULTS
from csv_handler import CSVCatalog
from endpoints import AltTextEndpoints, TokenAuthorizer, CAP_MANAGE, CAP_UPLOAD
from media_catalog import CatalogError, MediaAsset, alt_status
from processor import BatchProcessor, BulkSelectionProcessor, UploadHandler
from progress_tracker import ProgressTracker

DEFAULT_CONFIG_PATH = 'alt-text-settings.yaml'
DEFAULT_LOG_DIR = 'alt-text-logs'


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        description='Generate missing alt text for images from their title or filename'
    )
    parser.add_argument(
        '--config',
        help='Path to the YAML settings file (default: $ALT_TEXT_CONFIG or alt-text-settings.yaml)',
        default=None
    )
    parser.add_argument(
        '--log-dir',
        help='Directory for the audit log (default: $ALT_TEXT_LOG_DIR or alt-text-logs)',
        default=None
    )
    parser.add_argument(
        '--site-name',
        help='Site name used by the title_site mode (default: $ALT_TEXT_SITE_NAME)',
        default=None
    )
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Show debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init', help='Write default settings if none exist')

    config_parser = subparsers.add_parser('config', help='Show or change settings')
    config_parser.add_argument(
        '--set',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Change a setting (allowed_mimes takes a comma-separated list)'
    )

    run_parser = subparsers.add_parser('run', help='Process the whole catalog in batches')
    run_parser.add_argument('csv_file', help='Path to the catalog CSV file')
    run_parser.add_argument('--offset', type=int, default=0, help='Offset to start (or resume) from')
    run_parser.add_argument(
        '--delay',
        type=float,
        default=0.25,
        help='Delay in seconds between batches (default: 0.25)'
    )
    run_parser.add_argument('--max-batches', type=int, default=None, help='Stop after this many batches')
    run_parser.add_argument('--yes', '-y', action='store_true', help='Skip the confirmation prompt')

    select_parser = subparsers.add_parser('select', help='Process specific asset ids')
    select_parser.add_argument('csv_file', help='Path to the catalog CSV file')
    select_parser.add_argument('asset_ids', nargs='+', help='Asset ids to process')

    add_parser = subparsers.add_parser('add', help='Add an asset (alt text is generated if enabled)')
    add_parser.add_argument('csv_file', help='Path to the catalog CSV file')
    add_parser.add_argument('filename', help='File name of the new asset')
    add_parser.add_argument('--title', default='', help='Asset title')
    add_parser.add_argument('--mime-type', default='image/jpeg', help='MIME type (default: image/jpeg)')

    status_parser = subparsers.add_parser('status', help='Show which assets have alt text')
    status_parser.add_argument('csv_file', help='Path to the catalog CSV file')

    log_parser = subparsers.add_parser('log', help='Show the audit log')
    log_parser.add_argument('--tail', type=int, default=20, help='Number of lines to show (default: 20)')

    return parser


def parse_setting(assignment: str):
    """Split KEY=VALUE, turning allowed_mimes into a list."""
    if '=' not in assignment:
        raise ValueError(f"Expected KEY=VALUE, got: {assignment}")

    key, value = assignment.split('=', 1)
    key = key.strip()
    if key not in DEFAULTS:
        raise ValueError(f"Unknown setting: {key}")

    if key == 'allowed_mimes':
        return key, [m.strip() for m in value.split(',') if m.strip()]
    return key, value.strip()


def print_config(config):
    for key, value in config.to_dict().items():
        if isinstance(value, list):
            value = ', '.join(value)
        print(f"{key + ':':26}{value}")


def run_all(endpoints: AltTextEndpoints, token: str, offset: int, delay: float,
            max_batches: Optional[int]) -> int:
    """
    Call the batch endpoint until it reports no more work.

    Returns:
        Process exit code
    """
    progress = ProgressTracker(offset)

    while True:
        status, body = endpoints.bulk_run({'offset': progress.offset, 'auth_token': token})

        if status != 200:
            print(f"\n\nERROR: batch at offset {progress.offset} failed: {body.get('message', body['error'])}")
            progress.display_summary()
            return 1

        progress.update(body, failed=body.get('errors', 0))
        progress.display()

        if progress.finished:
            break
        if max_batches is not None and progress.batches >= max_batches:
            break

        if delay:
            time.sleep(delay)

    progress.display_summary()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    config_path = Path(args.config or os.getenv('ALT_TEXT_CONFIG', DEFAULT_CONFIG_PATH))
    log_dir = Path(args.log_dir or os.getenv('ALT_TEXT_LOG_DIR', DEFAULT_LOG_DIR))
    site_name = args.site_name if args.site_name is not None else os.getenv('ALT_TEXT_SITE_NAME', '')

    config_store = ConfigStore(config_path)
    audit_log = AuditLog(log_dir)

    if args.command == 'init':
        config = config_store.initialize()
        print(f"✓ Settings at {config_path}")
        print_config(config)
        return 0

    if args.command == 'config':
        try:
            changes = dict(parse_setting(a) for a in args.set)
        except ValueError as e:
            print(f"ERROR: {e}")
            return 1
        config = config_store.save(changes) if changes else config_store.load()
        print_config(config)
        return 0

    if args.command == 'log':
        lines = audit_log.read_lines()
        if not lines:
            print("Audit log is empty")
        for line in lines[-args.tail:] if args.tail > 0 else lines:
            print(line)
        return 0

    if not os.path.exists(args.csv_file) and args.command != 'add':
        print(f"ERROR: CSV file not found: {args.csv_file}")
        return 1

    catalog = CSVCatalog(args.csv_file)
    generator = AltTextGenerator(site_name)

    try:
        catalog.load()
    except CatalogError as e:
        print(f"ERROR: {e}")
        return 1

    if args.command == 'status':
        assets = catalog.all_assets()
        for asset in assets:
            print(f"{asset.id:>6}  {alt_status(asset):8} {asset.mime_type:14} {asset.filename}")
        present = sum(1 for a in assets if a.has_alt_text)
        print(f"\n{present} with alt text, {len(assets) - present} missing")
        return 0

    if args.command == 'add':
        try:
            asset = catalog.add_asset(MediaAsset(
                id=0, title=args.title, filename=args.filename, mime_type=args.mime_type
            ))
        except CatalogError as e:
            print(f"ERROR: {e}")
            return 1

        handler = UploadHandler(catalog, audit_log, generator)
        if handler.on_upload(asset.id, config_store.load()):
            asset = catalog.get_asset(asset.id)
            print(f"✓ Added asset {asset.id} with alt text: {asset.alt_text}")
        else:
            print(f"✓ Added asset {asset.id} (no alt text generated)")
        return 0

    # Local operator session holds every capability
    token = secrets.token_hex(16)
    endpoints = AltTextEndpoints(
        TokenAuthorizer({token: [CAP_MANAGE, CAP_UPLOAD]}),
        config_store,
        BatchProcessor(catalog, audit_log, generator),
        BulkSelectionProcessor(catalog, audit_log, generator)
    )

    if args.command == 'select':
        status, body = endpoints.bulk_select({'asset_ids': args.asset_ids, 'auth_token': token})
        if status != 200:
            print(f"ERROR: {body.get('message', body['error'])}")
            return 1
        print(f"✓ {body['processed']} images updated, {body['skipped']} skipped.")
        return 0

    if args.offset < 0:
        print("ERROR: --offset must be non-negative")
        return 1

    if not args.yes:
        response = input("Generate missing alt text across the whole catalog? "
                         "Existing alt text is never changed. (y/n): ")
        if response.lower() not in ['y', 'yes']:
            print("Cancelled by user")
            return 0

    try:
        return run_all(endpoints, token, args.offset, args.delay, args.max_batches)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
