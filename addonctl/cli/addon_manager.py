#!/usr/bin/env python3
"""
CLI tool for managing cluster add-ons

Usage:
    python -m addonctl.cli.addon_manager --help
    python -m addonctl.cli.addon_manager apply -f addons.yaml
    python -m addonctl.cli.addon_manager destroy --id cluster-a:vpc-cni
    python -m addonctl.cli.addon_manager show --id cluster-a:vpc-cni
    python -m addonctl.cli.addon_manager list
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def _print_results(results) -> bool:
    print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
    for result in results:
        if result.warning:
            print(f"WARNING ({result.addon_id}): {result.warning}", file=sys.stderr)
    return all(r.success for r in results)


async def apply_specs(spec_path: str, prune: bool = True) -> bool:
    """Reconcile the add-ons declared in a spec file"""
    from addonctl.addon.reconciler import create_addon_reconciler
    from addonctl.addon.spec_loader import load_specs
    from addonctl.config import init_db

    init_db()
    specs = load_specs(spec_path)
    reconciler = create_addon_reconciler()
    try:
        results = await reconciler.reconcile_all(specs, prune=prune)
    finally:
        await reconciler.lifecycle.client.close()
    return _print_results(results)


async def destroy_addon(addon_id: str) -> bool:
    """Delete a tracked add-on"""
    from addonctl.addon.reconciler import create_addon_reconciler
    from addonctl.config import init_db

    init_db()
    reconciler = create_addon_reconciler()
    try:
        result = await reconciler.destroy(addon_id)
    finally:
        await reconciler.lifecycle.client.close()
    return _print_results([result])


async def show_addon(addon_id: str) -> bool:
    """Print the remote state of an add-on"""
    from addonctl.addon.reconciler import create_addon_reconciler

    reconciler = create_addon_reconciler()
    try:
        record = await reconciler.lifecycle.read(addon_id)
    finally:
        await reconciler.lifecycle.client.close()

    if record is None:
        print(f"EKS Add-On {addon_id} not found")
        return False
    print(record.model_dump_json(indent=2))
    return True


def list_tracked_addons(cluster_name: Optional[str] = None) -> bool:
    """List tracked add-ons"""
    from addonctl.config import init_db
    from addonctl.db.ops import AddonStateOps

    init_db()
    states = AddonStateOps().query_states()
    if cluster_name:
        states = [s for s in states if s.cluster_name == cluster_name]

    if not states:
        print("No tracked add-ons")
        return True

    print(json.dumps([s.to_dict() for s in states], indent=2, ensure_ascii=False))
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Cluster add-on management CLI")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    apply_parser = subparsers.add_parser('apply', help='Reconcile declared add-ons')
    apply_parser.add_argument('-f', '--file', default=None, help='Spec file (defaults to ADDONCTL_SPEC_PATH)')
    apply_parser.add_argument('--no-prune', action='store_true', help='Keep tracked add-ons missing from the file')

    destroy_parser = subparsers.add_parser('destroy', help='Delete a tracked add-on')
    destroy_parser.add_argument('--id', required=True, help='Add-on ID (cluster-name:addon-name)')

    show_parser = subparsers.add_parser('show', help='Show remote add-on state')
    show_parser.add_argument('--id', required=True, help='Add-on ID (cluster-name:addon-name)')

    list_parser = subparsers.add_parser('list', help='List tracked add-ons')
    list_parser.add_argument('--cluster', help='Only add-ons of this cluster')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == 'apply':
            from addonctl.config import settings

            ok = asyncio.run(apply_specs(args.file or settings.spec_path, prune=not args.no_prune))
        elif args.command == 'destroy':
            ok = asyncio.run(destroy_addon(args.id))
        elif args.command == 'show':
            ok = asyncio.run(show_addon(args.id))
        elif args.command == 'list':
            ok = list_tracked_addons(args.cluster)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 130
    except Exception as e:
        logger.error(f"Command failed: {e}")
        return 1

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
