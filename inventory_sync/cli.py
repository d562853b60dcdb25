import argparse
import json
import logging
import sys
import uuid
from typing import Optional, Sequence

from inventory_sync.channels import CATEGORIES, build_channel
from inventory_sync.errors import InventorySyncError
from inventory_sync.persistence import get_marketplace
from inventory_sync.scheduler import run_due_syncs
from inventory_sync.session_factory import session_factory
from inventory_sync.stock import adjust_stock

logger = logging.getLogger("inventory_sync.cli")


def _emit(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def run_sync_command(args) -> int:
    """마켓 1개 동기화 (전체 또는 카테고리)"""
    with session_factory() as session:
        marketplace = get_marketplace(session, uuid.UUID(args.marketplace_id))
        channel = build_channel(session, marketplace)
        try:
            if args.category:
                logger.info(f"[CLI] Starting {args.category} sync for {marketplace.name}")
                result = channel.sync_category(args.category)
            else:
                logger.info(f"[CLI] Starting full sync for {marketplace.name}")
                result = channel.sync()
        finally:
            channel.close()
    _emit(result.model_dump(mode="json", by_alias=True))
    return 0 if result.success else 1


def run_sync_due_command(args) -> int:
    results = run_due_syncs(session_factory, max_workers=args.max_workers)
    _emit({str(k): v.model_dump(mode="json", by_alias=True) for k, v in results.items()})
    return 0 if all(r.success for r in results.values()) else 1


def run_health_command(args) -> int:
    with session_factory() as session:
        marketplace = get_marketplace(session, uuid.UUID(args.marketplace_id))
        channel = build_channel(session, marketplace)
        try:
            result = channel.health_check()
        finally:
            channel.close()
    _emit(result.model_dump(mode="json", by_alias=True))
    return 0 if result.success else 1


def run_adjust_command(args) -> int:
    with session_factory() as session:
        result = adjust_stock(
            session,
            uuid.UUID(args.product_id),
            uuid.UUID(args.marketplace_id),
            args.adjustment_type,
            args.quantity,
            args.reason,
        )
    _emit({"success": result.success, "newQuantity": result.new_quantity, "adjustmentId": result.adjustment_id})
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inventory Sync Operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Synchronize one marketplace")
    sync_parser.add_argument("marketplace_id")
    sync_parser.add_argument("--category", choices=CATEGORIES, help="Sync a single category only")
    sync_parser.set_defaults(handler=run_sync_command)

    due_parser = subparsers.add_parser("sync-due", help="Synchronize every marketplace whose interval elapsed")
    due_parser.add_argument("--max-workers", type=int, default=None)
    due_parser.set_defaults(handler=run_sync_due_command)

    health_parser = subparsers.add_parser("health", help="Check marketplace API health")
    health_parser.add_argument("marketplace_id")
    health_parser.set_defaults(handler=run_health_command)

    adjust_parser = subparsers.add_parser("adjust", help="Adjust stock with an audit entry")
    adjust_parser.add_argument("product_id")
    adjust_parser.add_argument("marketplace_id")
    adjust_parser.add_argument("adjustment_type", choices=["increase", "decrease"])
    adjust_parser.add_argument("quantity", type=int)
    adjust_parser.add_argument("--reason")
    adjust_parser.set_defaults(handler=run_adjust_command)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 1

    try:
        return args.handler(args)
    except (InventorySyncError, ValueError) as e:
        logger.error(f"[CLI] {e}")
        _emit({"success": False, "message": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
