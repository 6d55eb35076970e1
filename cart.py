"""
In-memory shopping carts.

Each cart belongs to an owner key (``user:<id>``, ``session:<id>`` or
``guest``) and holds ``{"bookId", "quantity"}`` line items. Carts live in
process memory only; a restart empties them.
"""

import threading
from typing import Dict, List, Optional

GUEST = "guest"


def owner_key(user_id: Optional[int] = None, session_id: Optional[str] = None) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    if session_id:
        return f"session:{session_id}"
    return GUEST


class CartStore:
    def __init__(self):
        self._carts: Dict[str, List[dict]] = {}
        self._lock = threading.Lock()

    def add(self, owner: str, book_id: int, quantity: int = 1) -> List[dict]:
        """Append a line, or add to the quantity of an existing line for the same book"""
        with self._lock:
            lines = self._carts.setdefault(owner, [])
            for line in lines:
                if line["bookId"] == book_id:
                    line["quantity"] += quantity
                    break
            else:
                lines.append({"bookId": book_id, "quantity": quantity})
            return [dict(line) for line in lines]

    def get(self, owner: str) -> List[dict]:
        with self._lock:
            return [dict(line) for line in self._carts.get(owner, [])]

    def take(self, owner: str) -> List[dict]:
        """Remove and return the owner's lines in one step"""
        with self._lock:
            return self._carts.pop(owner, [])

    def remove(self, owner: str, book_id: int) -> bool:
        with self._lock:
            lines = self._carts.get(owner, [])
            kept = [line for line in lines if line["bookId"] != book_id]
            if len(kept) == len(lines):
                return False
            self._carts[owner] = kept
            return True

    def restore(self, owner: str, lines: List[dict]) -> None:
        """Put taken lines back, merging with anything added since"""
        with self._lock:
            current = self._carts.setdefault(owner, [])
            for taken in reversed(lines):
                for line in current:
                    if line["bookId"] == taken["bookId"]:
                        line["quantity"] += taken["quantity"]
                        break
                else:
                    current.insert(0, dict(taken))

    def reset(self) -> None:
        with self._lock:
            self._carts.clear()


carts = CartStore()
