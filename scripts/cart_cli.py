from __future__ import annotations

import argparse
import asyncio
import os

from packages.shared.schemas.cart_v1 import RoleV1
from services.portal.app.services.cart_factory import cart_timeout_seconds, get_cart_service
from services.portal.app.services.cart_ops import CartOperations
from services.portal.app.services.cart_store import CartSnapshot, CartStore
from services.portal.app.services.checkout import CheckoutOrchestrator
from services.portal.app.services.eligibility import CartPolicy
from services.portal.app.services.session import Actor, SessionContext
from services.portal.app.utils.logging import configure_logging


def _print_snapshot(snapshot: CartSnapshot) -> None:
    for item in snapshot.items:
        print(
            f"  {item.line_id}  {item.product_id:<10} {item.display_name:<24} "
            f"{item.quantity:>3} x {item.unit_price}"
        )
    print(f"  items={snapshot.total_item_count} total={snapshot.total_price}")


async def _run(args: argparse.Namespace) -> int:
    session = SessionContext(token=args.token, actor=Actor(id=args.actor_id, role=RoleV1.parse(args.role)))
    operations = CartOperations(
        CartStore(),
        get_cart_service(),
        policy=CartPolicy.from_env(),
        timeout_seconds=cart_timeout_seconds(),
    )

    # Load the server cart first so checkout and line lookups see it.
    outcome = await operations.fetch_cart(session)

    if args.command == "add":
        outcome = await operations.add_item(session, args.product_id, args.quantity)
    elif args.command == "update":
        outcome = await operations.update_quantity(session, args.line_id, args.quantity)
    elif args.command == "remove":
        outcome = await operations.remove_item(session, args.line_id)
    elif args.command == "checkout":
        result = await CheckoutOrchestrator(operations).checkout(session)
        if result.error is not None:
            print(f"error [{result.error.kind.value}]: {result.error.message}")
            return 1
        assert result.order is not None
        print(f"order {result.order.id} total={result.order.total} status={result.order.status}")
        _print_snapshot(result.snapshot)
        return 0

    if outcome.error is not None:
        print(f"error [{outcome.error.kind.value}]: {outcome.error.message}")
        _print_snapshot(outcome.snapshot)
        return 1

    _print_snapshot(outcome.snapshot)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Drive the portal cart against the configured cart service"
    )
    parser.add_argument(
        "--token",
        default=os.getenv("PORTAL_CART_TOKEN", ""),
        help="Bearer token for the cart service (default: $PORTAL_CART_TOKEN)",
    )
    parser.add_argument("--actor-id", default="u-1")
    parser.add_argument("--role", default="customer", help="customer, vendor or admin")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="Fetch and print the cart")

    add = sub.add_parser("add", help="Add a product")
    add.add_argument("product_id")
    add.add_argument("quantity", type=int, nargs="?", default=1)

    update = sub.add_parser("update", help="Set a line's quantity")
    update.add_argument("line_id")
    update.add_argument("quantity", type=int)

    remove = sub.add_parser("remove", help="Remove a line")
    remove.add_argument("line_id")

    sub.add_parser("checkout", help="Convert the cart into an order")

    args = parser.parse_args()
    configure_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
