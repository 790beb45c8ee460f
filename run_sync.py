#!/usr/bin/env python3
"""
Load invoice reconciliation data through the data hooks.

This script provides a simple command-line interface to:
1. Load invoices, vendors or rules with filters (cache first, then backend)
2. Optionally follow realtime updates for a while
3. Print dashboard statistics and export the snapshot to CSV or Excel

Usage:
    python run_sync.py --entity invoices --vendor-id v1 --status PENDING --stats
    python run_sync.py --entity rules --vendor-code HOTEL001 --watch 30 --export excel
"""

import argparse
import asyncio
import logging
import os
import sys
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

os.makedirs('logs', exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('logs/sync.log', mode='a'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Load invoice reconciliation data')
    parser.add_argument(
        '--entity',
        choices=['invoices', 'vendors', 'rules'],
        default='invoices',
        help='Entity type to load'
    )
    parser.add_argument('--vendor-id', type=str, help='Only invoices of this vendor')
    parser.add_argument('--status', type=str, help='Only records with this status')
    parser.add_argument('--vendor-code', type=str, help='Only rules for this vendor code (global rules included)')
    parser.add_argument('--active-only', action='store_true', help='Only active rules')
    parser.add_argument('--search', type=str, help='Free-text search')
    parser.add_argument(
        '--watch',
        type=float,
        default=0,
        help='Follow realtime updates for this many seconds'
    )
    parser.add_argument('--stats', action='store_true', help='Print dashboard statistics')
    parser.add_argument(
        '--export',
        choices=['csv', 'excel'],
        help='Export the loaded records'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        default='./outputs',
        help='Directory to save exports'
    )
    parser.add_argument('--mock', action='store_true', help='Force the mock backend')
    return parser.parse_args(argv)


def build_filters(args) -> dict:
    filters = {'search': args.search}
    if args.entity == 'invoices':
        filters.update(vendor_id=args.vendor_id, status=args.status)
    elif args.entity == 'vendors':
        filters.update(status=args.status)
    else:
        filters.update(vendor_code=args.vendor_code, is_active=True if args.active_only else None)
    return {k: v for k, v in filters.items() if v is not None}


async def run(args) -> int:
    from src.config import AppConfig, validate_config
    from src.database.service_factory import build_services
    from src.output_generation import FileWriter, ReportGenerator
    from src.models.entities import EntityType

    config = AppConfig.from_env(dotenv=False)
    if args.mock:
        config.use_mock_data = True
    logging.getLogger().setLevel(config.log_level)

    problems = validate_config(config)
    if problems:
        for problem in problems:
            logger.error(problem)
        return 2

    services = build_services(config)
    realtime = args.watch > 0
    hook_factory = getattr(services, args.entity)
    hook = hook_factory(build_filters(args), realtime=realtime)

    try:
        async with hook:
            result = await hook.wait_until_settled()
            logger.info(f"Loaded {len(result.data)} {args.entity} ({result.state.value})")

            if realtime:
                remove = hook.add_listener(
                    lambda r: logger.info(f"Realtime update: {len(r.data)} {args.entity}")
                )
                await asyncio.sleep(args.watch)
                remove()

            records = hook.data
            error = hook.error

        summary = {'entity': args.entity, 'filters': build_filters(args), 'records': len(records)}
        output_files = {}

        if args.stats:
            invoices = await services.data_service.list(EntityType.INVOICE)
            vendors = await services.data_service.list(EntityType.VENDOR)
            report = ReportGenerator()
            stats = report.dashboard_statistics(invoices, vendors)
            report.print_console_summary(stats)
            summary['statistics'] = stats

        if args.export:
            os.makedirs(args.output_dir, exist_ok=True)
            writer = FileWriter(args.output_dir)
            output_files[args.entity] = writer.write_snapshot(records, args.entity, args.export)

        ReportGenerator().write_json_log(summary, output_files)
    finally:
        await services.close()

    if error:
        logger.error(f"Finished with error: {error}")
        return 1
    return 0


def main():
    """Main entry point."""
    args = parse_args()
    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
