import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from cart import CartStore
from database import books, create_row, get_row_by_id, get_rows, orders, users

logger = logging.getLogger(__name__)


def current_prices(book_ids: Iterable[int]) -> Dict[int, Decimal]:
    ids = list(set(book_ids))
    if not ids:
        return {}
    return {row["id"]: Decimal(str(row["price"])) for row in get_rows(books, where=books.c.id.in_(ids))}


def compute_total(lines: List[dict], prices: Dict[int, Decimal]) -> Decimal:
    """Sum of quantity * price; books without a price count as 0"""
    total = Decimal("0")
    for line in lines:
        total += Decimal(line["quantity"]) * prices.get(line["bookId"], Decimal("0"))
    return total.quantize(Decimal("0.01"))


def place_order(user_id: int, store: CartStore, owner: str) -> dict:
    """Turn the owner's cart into an order row for user_id.

    Raises ValueError when the user does not exist; the cart is left alone
    in that case. The cart is emptied once the order row is written; if the
    price lookup or insert fails the lines go back into the cart.
    """
    if get_row_by_id(users, user_id) is None:
        raise ValueError("User not found")
    lines = store.take(owner)
    try:
        prices = current_prices(line["bookId"] for line in lines)
        order = create_row(orders, {"user_id": user_id, "total": compute_total(lines, prices)})
    except Exception:
        store.restore(owner, lines)
        raise
    missing = [line["bookId"] for line in lines if line["bookId"] not in prices]
    if missing:
        logger.warning("Order %s for user %s includes unknown books %s, priced at 0", order["id"], user_id, missing)
    logger.info("Placed order %s for user %s with %d lines", order["id"], user_id, len(lines))
    return order
