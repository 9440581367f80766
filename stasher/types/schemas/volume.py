from typing import Iterable

from kubernetes_asyncio.client import V1Volume
from marshmallow import ValidationError

# camelCase keys a core/v1 Volume may carry besides its name
VOLUME_SOURCES = frozenset(v for v in V1Volume.attribute_map.values() if v != "name")


def validate_volume_sources(keys: Iterable[str], owner: str) -> None:
    """Reject volume source keys the API client cannot build a V1Volume from."""
    unknown = sorted(k for k in keys if k not in VOLUME_SOURCES)
    if unknown:
        raise ValidationError(f"{owner} has unknown volume source(s): {', '.join(unknown)}.")
