#!/usr/bin/env python3
"""
Command-line access to CCM resolution.

Usage:
    python resolve_ccm.py car ACMX100001 [--as-of 2024-06-30]
    python resolve_ccm.py scope rider 5b0e...
    python resolve_ccm.py preview amendment 5b0e...
    python resolve_ccm.py tree [--customer-id 5b0e...]

Output is JSON on stdout. Exit status 1 means the car or scope was not found,
2 an invalid argument.
"""

import sys
import json
import argparse
import logging
from datetime import date
from pathlib import Path
from uuid import UUID

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent))

from config_manager import get_config, configure_logging
from ccm.connection import DatabaseSettings, init_db, close_db
from ccm.errors import NotFoundError, InvalidScopeTypeError
from ccm.service import CCMInstructionService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resolve CCM instructions")
    parser.add_argument("--config", help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    car = subparsers.add_parser("car", help="Effective CCM for a car")
    car.add_argument("car_number")
    car.add_argument("--as-of", type=date.fromisoformat, help="Placement date (YYYY-MM-DD), default today")

    scope = subparsers.add_parser("scope", help="Effective CCM as seen from a scope")
    scope.add_argument("level")
    scope.add_argument("scope_id", type=UUID)

    preview = subparsers.add_parser("preview", help="Record a scope would inherit from")
    preview.add_argument("level")
    preview.add_argument("scope_id", type=UUID)

    tree = subparsers.add_parser("tree", help="Scope tree with override flags")
    tree.add_argument("--customer-id", type=UUID)

    return parser


def run(service: CCMInstructionService, args) -> object:
    """Execute one subcommand and return JSON-compatible output."""
    if args.command == "car":
        return service.resolve_for_car(args.car_number, args.as_of).to_dict()
    if args.command == "scope":
        return service.resolve_for_scope(args.level, args.scope_id).to_dict()
    if args.command == "preview":
        parent = service.get_parent_preview(args.level, args.scope_id)
        return parent.to_dict() if parent else None
    return [node.to_dict() for node in service.get_hierarchy_tree(args.customer_id)]


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config(args.config)
    configure_logging(config.logging)

    provider = init_db(DatabaseSettings.from_config(config.database))
    service = CCMInstructionService(provider, hide_inactive=config.hierarchy_tree.hide_inactive)
    try:
        output = run(service, args)
    except InvalidScopeTypeError as e:
        logger.warning(str(e))
        return 2
    except NotFoundError as e:
        logger.warning(str(e))
        return 1
    finally:
        close_db()

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
