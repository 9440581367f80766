import jsonpickle
from datetime import datetime, timezone
from typing import Any, Optional, Tuple


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data) -> str:
    """
    Returns a canonical JSON representation of a dictionary.

    Keys are sorted recursively, so the representation stays stable even when
    the API server returns keys in a different order.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def decode_json(text: Optional[str]) -> Any:
    """Decode JSON written by `canonicalize_dict`, returns None for empty input."""
    if not text:
        return None
    return jsonpickle.decode(text)


def meta_namespace_key(namespace: Optional[str], name: str) -> str:
    """Work queue key of a namespaced object, `name` alone when cluster scoped."""
    if namespace:
        return f"{namespace}/{name}"
    return name


def split_meta_namespace_key(key: str) -> Tuple[str, str]:
    """Split a work queue key into namespace and name."""
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


def get_annotation(metadata: Any, key: str) -> Optional[str]:
    """Read an annotation from a dict body or a kubernetes_asyncio V1ObjectMeta."""
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        annotations = metadata.get("annotations") or {}
    else:
        annotations = metadata.annotations or {}
    return annotations.get(key)
