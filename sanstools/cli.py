import argparse
import asyncio
import json

from sanstools.configuration.configuration import RuntimeConfig
from sanstools.utilities.setup_utilities import (
    init_db,
    setup_node,
)

async def _run_detect(args):
    from sanstools.container.service_container import ServiceContainer
    container = ServiceContainer.initialize()
    try:
        response = await container.orchestrator.on_detection_request(
            user_id=args.user,
            source_id=args.source_id,
            source_url=args.source_url or args.source_id,
            image_refs=args.images,
        )
        print(response.text)
    finally:
        await container.close()

async def _run_claim(args):
    from sanstools.container.service_container import ServiceContainer
    container = ServiceContainer.initialize()
    try:
        response = await container.orchestrator.on_claim_request(args.user, args.address)
        print(response.text)
    finally:
        await container.close()

async def _run_ledger(args):
    from sanstools.container.service_container import ServiceContainer
    container = ServiceContainer.initialize()
    try:
        ledger = await container.ledger.get_ledger(args.user)
        print(json.dumps(ledger.to_dict(), indent=2))
    finally:
        await container.close()

def main():
    parser = argparse.ArgumentParser(description="SansTools CLI utilities")
    parser.add_argument("--mainnet", action="store_true", help="Use Base mainnet instead of testnet")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    init_db_parser = subparsers.add_parser('init-db', help='Create the ledger tables')
    init_db_parser.add_argument("--drop-tables", action="store_true",
                               help="Drop and recreate tables (WARNING: Destructive)")

    subparsers.add_parser('setup-node', help='Setup a new node')

    detect_parser = subparsers.add_parser('detect', help='Classify images and record a detection for a user')
    detect_parser.add_argument("--user", required=True, help="Platform identity of the poster")
    detect_parser.add_argument("--source-id", required=True, help="Originating post/message id")
    detect_parser.add_argument("--source-url", help="Originating post URL")
    detect_parser.add_argument("images", nargs='*', help="Image URLs")

    claim_parser = subparsers.add_parser('claim', help="Pay out a user's unpaid detections")
    claim_parser.add_argument("--user", required=True, help="Platform identity of the claimant")
    claim_parser.add_argument("--address", required=True, help="Destination wallet address")

    ledger_parser = subparsers.add_parser('ledger', help="Print a user's detection ledger")
    ledger_parser.add_argument("--user", required=True, help="Platform identity")

    args = parser.parse_args()
    RuntimeConfig.USE_TESTNET = not args.mainnet

    if args.command == 'init-db':
        init_db.main(drop_tables=args.drop_tables)
    elif args.command == 'setup-node':
        setup_node.main()
    elif args.command == 'detect':
        asyncio.run(_run_detect(args))
    elif args.command == 'claim':
        asyncio.run(_run_claim(args))
    elif args.command == 'ledger':
        asyncio.run(_run_ledger(args))
    else:
        parser.print_help()
