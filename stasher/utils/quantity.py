"""Quantity-aware structural equality for custom resource specs.

Resource quantities can be serialized differently across writes ("1Gi" and
"1024Mi", "500m" and "0.5"), so leaves that hold quantities are compared by
parsed value instead of by string.
"""
from decimal import Decimal
from typing import Any, Optional

from kubernetes.utils import parse_quantity

#: Mappings whose values are all quantities (resources.requests, resources.limits)
QUANTITY_MAPS = frozenset({"requests", "limits", "capacity", "hard"})

#: Keys whose value is a single quantity
QUANTITY_KEYS = frozenset({"sizeLimit", "size", "storage"})


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a Kubernetes quantity, returns None when the value is not one."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        return parse_quantity(value)
    except (ValueError, TypeError, ArithmeticError):
        return None


def quantities_equal(a: Any, b: Any) -> bool:
    """Compare two quantities by value, falling back to plain equality."""
    x, y = to_decimal(a), to_decimal(b)
    if x is None or y is None:
        return a == b
    return x == y


def spec_equal(old: Any, new: Any, _quantity: bool = False) -> bool:
    """Deep structural equality where quantity-valued leaves compare numerically."""
    if _quantity and not isinstance(old, (dict, list)) and not isinstance(new, (dict, list)):
        return quantities_equal(old, new)
    if isinstance(old, dict) and isinstance(new, dict):
        if old.keys() != new.keys():
            return False
        for key in old:
            if key in QUANTITY_MAPS and isinstance(old[key], dict):
                if not _quantity_map_equal(old[key], new[key]):
                    return False
            elif not spec_equal(old[key], new[key], _quantity=key in QUANTITY_KEYS):
                return False
        return True
    if isinstance(old, list) and isinstance(new, list):
        if len(old) != len(new):
            return False
        return all(spec_equal(x, y) for x, y in zip(old, new))
    return old == new


def _quantity_map_equal(old: Any, new: Any) -> bool:
    if not isinstance(new, dict) or old.keys() != new.keys():
        return False
    return all(quantities_equal(old[k], new[k]) for k in old)
