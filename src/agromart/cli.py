"""Command-line interface for agromart."""

import argparse
import json
import sys

from . import __version__
from .checkout import OrderCoordinator
from .config import configure_logging, load_settings
from .database import Database
from .errors import AgromartError, UserNotFoundError
from .models import OrderItemRequest, PricingBreakdown
from .order_store import OrderStore
from .pricing import PricingEngine
from .schemas import order_to_schema
from .seed import seed_demo_data
from .tables import Order, User


def get_database() -> Database:
    """Get a Database for the configured URL."""
    return Database.from_settings(load_settings())


def get_coordinator(database: Database) -> OrderCoordinator:
    return OrderCoordinator(database, pricing=PricingEngine.from_settings(load_settings()))


def _parse_items(specs: list[str]) -> list[OrderItemRequest]:
    try:
        return [OrderItemRequest.parse(spec) for spec in specs]
    except ValueError:
        raise argparse.ArgumentTypeError("items must look like PRODUCT_ID:QTY") from None


def _load_user(database: Database, user_id: str) -> User:
    with database.session() as session:
        user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def format_order(order: Order) -> str:
    """Format an order as a single summary line."""
    return (
        f"{order.order_number}  {order.status.value:<16} "
        f"total={order.total}  lines={len(order.items)}  id={order.id[:8]}"
    )


def format_pricing(priced: PricingBreakdown) -> list[str]:
    lines = []
    for item in priced.items:
        lines.append(
            f"  {item.product_name} x{item.quantity} @ {item.unit_price} = {item.total_price}"
        )
    lines.append(f"Subtotal: {priced.subtotal}")
    lines.append(f"Shipping: {priced.shipping_fee}")
    coupon = priced.coupon
    if coupon.code:
        lines.append(f"Coupon:   {coupon.code} ({coupon.reason}) -{coupon.discount}")
    lines.append(f"Total:    {priced.total}")
    return lines


def cmd_init(args: argparse.Namespace) -> int:
    """Create the database schema."""
    try:
        database = get_database()
        if database.is_initialized() and not args.force:
            print("Database already initialized. Use --force to recreate it.", file=sys.stderr)
            return 1
        database.create_schema(drop_existing=args.force)
        print(f"Initialized database at {database.url.render_as_string(hide_password=True)}")
        return 0

    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_seed(args: argparse.Namespace) -> int:
    """Insert demo data."""
    try:
        database = get_database()
        if not database.is_initialized():
            database.create_schema()
        counts = seed_demo_data(database)
        if not counts:
            print("Database already has users; nothing seeded.")
            return 0
        print("Seeded demo data:")
        for name, count in counts.items():
            print(f"  {name}: {count}")
        return 0

    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_quote(args: argparse.Namespace) -> int:
    """Price items without placing an order."""
    try:
        items = _parse_items(args.items)
        database = get_database()
        priced = get_coordinator(database).quote(
            customer_id=args.customer or "",
            items=items,
            coupon_code=args.coupon,
            address_id=args.address,
        )
        if args.json:
            print(json.dumps(priced.to_dict(), indent=2))
            return 0
        for line in format_pricing(priced):
            print(line)
        return 0

    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_create(args: argparse.Namespace) -> int:
    """Place an order for a customer."""
    try:
        items = _parse_items(args.items)
        database = get_database()
        order, priced = get_coordinator(database).create_order(
            customer_id=args.customer,
            address_id=args.address,
            payment_method=args.payment,
            items=items,
            coupon_code=args.coupon,
        )
        if args.json:
            print(order_to_schema(order).model_dump_json(by_alias=True, indent=2))
            return 0
        print(f"Created order {order.order_number}")
        for line in format_pricing(priced):
            print(line)
        return 0

    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders visible to a user."""
    try:
        database = get_database()
        user = _load_user(database, args.user)
        orders, total = OrderStore(database).list_orders(
            user, status=args.status, page=args.page, limit=args.limit
        )

        if args.json:
            data = {
                "orders": [order_to_schema(o).model_dump(mode="json", by_alias=True) for o in orders],
                "total": total,
            }
            print(json.dumps(data, indent=2))
            return 0

        if not orders:
            print("No orders.")
            return 0

        print(f"Orders ({len(orders)} of {total}):")
        for order in orders:
            print(f"  {format_order(order)}")
        return 0

    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_status(args: argparse.Namespace) -> int:
    """Change an order's status."""
    try:
        database = get_database()
        user = _load_user(database, args.user)
        order = OrderStore(database).update_order(user, args.order_id, status=args.status)
        print(f"{order.order_number} is now {order.status.value}")
        return 0

    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        database = get_database()
        if not database.is_initialized():
            print("Warning: database not initialized. Run 'agromart init' first.", file=sys.stderr)
            print("Starting server anyway...", file=sys.stderr)

        print("Starting agromart API server...")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "agromart.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
        )
        return 0

    except AgromartError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agromart",
        description="Agricultural marketplace checkout and order management",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Create the database schema")
    init_parser.add_argument(
        "--force", "-f", action="store_true", help="Drop and recreate existing tables"
    )

    # seed
    subparsers.add_parser("seed", help="Insert demo users, products and coupons")

    # quote
    quote_parser = subparsers.add_parser("quote", help="Price items without ordering")
    quote_parser.add_argument("items", nargs="+", help="Items as PRODUCT_ID:QTY")
    quote_parser.add_argument("--coupon", "-c", help="Coupon code to try")
    quote_parser.add_argument("--customer", help="Customer ID (needed with --address)")
    quote_parser.add_argument("--address", help="Delivery address ID")
    quote_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Place and inspect orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    # orders create
    create_order_parser = orders_subparsers.add_parser("create", help="Place an order")
    create_order_parser.add_argument("items", nargs="+", help="Items as PRODUCT_ID:QTY")
    create_order_parser.add_argument("--customer", required=True, help="Customer ID")
    create_order_parser.add_argument("--address", required=True, help="Delivery address ID")
    create_order_parser.add_argument(
        "--payment", default="CASH_ON_DELIVERY", help="Payment method (default: CASH_ON_DELIVERY)"
    )
    create_order_parser.add_argument("--coupon", "-c", help="Coupon code")
    create_order_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders list
    list_orders_parser = orders_subparsers.add_parser("list", help="List orders")
    list_orders_parser.add_argument("--user", "-u", required=True, help="Acting user ID")
    list_orders_parser.add_argument("--status", "-s", help="Filter by status")
    list_orders_parser.add_argument("--page", type=int, default=1, help="Page number")
    list_orders_parser.add_argument("--limit", type=int, default=10, help="Page size")
    list_orders_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders status
    status_parser = orders_subparsers.add_parser("status", help="Change an order's status")
    status_parser.add_argument("order_id", help="Order ID")
    status_parser.add_argument("status", help="New status (e.g. CONFIRMED)")
    status_parser.add_argument("--user", "-u", required=True, help="Acting user ID")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()
    configure_logging(load_settings().log_level)

    if not args.command:
        parser.print_help()
        return 0

    # Handle orders subcommands
    if args.command == "orders":
        if not hasattr(args, "orders_command") or not args.orders_command:
            parser.parse_args(["orders", "--help"])
            return 0
        if args.orders_command == "create":
            return cmd_orders_create(args)
        elif args.orders_command == "list":
            return cmd_orders_list(args)
        elif args.orders_command == "status":
            return cmd_orders_status(args)

    commands = {
        "init": cmd_init,
        "seed": cmd_seed,
        "quote": cmd_quote,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
