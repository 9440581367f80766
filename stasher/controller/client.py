import logging
from typing import AsyncIterator, Generic, List, Optional, Tuple, Type, TypeVar

from kubernetes_asyncio import watch
from kubernetes_asyncio.client import ApiException
from kubernetes_asyncio.client.api_client import ApiClient

from stasher.resources.base import BaseResource
from stasher.resources.custom import CustomResource

T = TypeVar("T", bound=CustomResource)

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
ERROR = "ERROR"


class CustomResourceClient(BaseResource, Generic[T]):
    """List, watch and get one custom resource kind.

    An empty namespace means every namespace.
    """

    def __init__(self, api_client: ApiClient, kind: Type[T], sensor=None):
        super().__init__(api_client, sensor)
        self.kind = kind

    def _params(self):
        return dict(
            group=self.kind.GROUP_NAME,
            version=self.kind.GROUP_VERSION,
            plural=self.kind.PLURAL_NAME,
        )

    async def list(self, namespace: str) -> Tuple[List[T], str]:
        """Return every object and the list's resourceVersion."""
        result = await self.list_custom_objects(namespace=namespace, **self._params())
        items = [self.kind(body) for body in result.get("items") or []]
        return items, (result.get("metadata") or {}).get("resourceVersion", "")

    async def get(self, namespace: str, name: str) -> Optional[T]:
        body = await self.get_custom_object(namespace=namespace, name=name, **self._params())
        return self.kind(body) if body is not None else None

    async def watch(
        self, namespace: str, resource_version: str, timeout_seconds: int
    ) -> AsyncIterator[Tuple[str, T]]:
        """Yield (event type, object) pairs until the server closes the window.

        ERROR events are raised as ApiException carrying the status code so
        the caller can tell an expired resourceVersion (410) from the rest.
        """
        if namespace:
            func = self.custom_objects_api.list_namespaced_custom_object
            kwargs = dict(namespace=namespace, **self._params())
        else:
            func = self.custom_objects_api.list_cluster_custom_object
            kwargs = self._params()
        w = watch.Watch()
        async with w.stream(
            func,
            resource_version=resource_version,
            timeout_seconds=timeout_seconds,
            **kwargs,
        ) as stream:
            async for event in stream:
                event_type = event["type"]
                obj = event["object"]
                if event_type == ERROR:
                    status = obj.get("code") if isinstance(obj, dict) else None
                    reason = obj.get("message") if isinstance(obj, dict) else None
                    raise ApiException(status=status, reason=reason)
                if event_type not in (ADDED, MODIFIED, DELETED):
                    logger.debug(f"Ignoring {event_type} event for {self.kind.KIND}")
                    continue
                yield event_type, self.kind(obj)
