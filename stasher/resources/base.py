from typing import Any, Dict, Optional

from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    CustomObjectsApi,
    RbacAuthorizationV1Api,
    V1DeleteOptions,
    V1Job,
    V1PodList,
    V1RoleBinding,
    V1ServiceAccount,
)
from kubernetes_asyncio.client.api_client import ApiClient

from stasher.sensors import OperatorSensor
from stasher.utils.errors import already_exists_error, not_found_error
from stasher.utils.objects import cached_property


class BaseResource:
    """Thin async wrappers over the API calls the operator makes.

    Every create treats "already exists" as success and every delete treats
    "not found" as success. Other API errors propagate to the caller so the
    work queue can retry the key.
    """

    STASHER_OPERATOR_NAME = "stasher-operator"

    api_client: ApiClient
    sensor: Optional[OperatorSensor]

    def __init__(self, api_client: ApiClient, sensor: Optional[OperatorSensor] = None):
        self.api_client = api_client
        self.sensor = sensor

    @cached_property
    def core_v1_api(self) -> CoreV1Api:
        return CoreV1Api(self.api_client)

    @cached_property
    def apps_v1_api(self) -> AppsV1Api:
        return AppsV1Api(self.api_client)

    @cached_property
    def batch_v1_api(self) -> BatchV1Api:
        return BatchV1Api(self.api_client)

    @cached_property
    def rbac_v1_api(self) -> RbacAuthorizationV1Api:
        return RbacAuthorizationV1Api(self.api_client)

    @cached_property
    def custom_objects_api(self) -> CustomObjectsApi:
        return CustomObjectsApi(self.api_client)

    def _sync_start(self, resource_type: str, name: str, namespace: str, operation: str):
        if self.sensor is None:
            return None
        return self.sensor.on_resource_sync_start(resource_type, name, namespace, operation)

    def _sync_complete(self, state, resource_type: str, name: str, namespace: str,
                       operation: str, success: bool):
        if self.sensor is not None:
            self.sensor.on_resource_sync_complete(
                resource_type, name, namespace, operation, state, success
            )

    async def create_job(self, namespace: str, job: V1Job) -> bool:
        """Create a Job, returns False when it already existed."""
        name = job.metadata.name
        state = self._sync_start("Job", name, namespace, "create")
        try:
            await self.batch_v1_api.create_namespaced_job(namespace=namespace, body=job)
        except ApiException as ex:
            if already_exists_error(ex):
                self._sync_complete(state, "Job", name, namespace, "create", True)
                return False
            self._sync_complete(state, "Job", name, namespace, "create", False)
            raise
        self._sync_complete(state, "Job", name, namespace, "create", True)
        return True

    async def fetch_job(self, name: str, namespace: str) -> Optional[V1Job]:
        try:
            return await self.batch_v1_api.read_namespaced_job(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def delete_job(self, name: str, namespace: str) -> None:
        try:
            await self.batch_v1_api.delete_namespaced_job(
                name=name,
                namespace=namespace,
                body=V1DeleteOptions(propagation_policy="Background"),
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def list_pods(self, namespace: str, label_selector: str = None) -> V1PodList:
        return await self.core_v1_api.list_namespaced_pod(
            namespace=namespace, label_selector=label_selector
        )

    async def delete_pod(self, name: str, namespace: str) -> None:
        try:
            await self.core_v1_api.delete_namespaced_pod(
                name=name, namespace=namespace, body=V1DeleteOptions()
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def delete_pods(self, namespace: str, label_selector: str) -> None:
        """Delete every pod matching `label_selector`."""
        await self.core_v1_api.delete_collection_namespaced_pod(
            namespace=namespace, label_selector=label_selector
        )

    async def delete_config_map(self, name: str, namespace: str) -> None:
        try:
            await self.core_v1_api.delete_namespaced_config_map(
                name=name, namespace=namespace, body=V1DeleteOptions()
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def create_service_account(
        self, namespace: str, service_account: V1ServiceAccount
    ) -> None:
        try:
            await self.core_v1_api.create_namespaced_service_account(
                namespace=namespace, body=service_account
            )
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def create_role_binding(self, namespace: str, role_binding: V1RoleBinding) -> None:
        try:
            await self.rbac_v1_api.create_namespaced_role_binding(
                namespace=namespace, body=role_binding
            )
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def patch_custom_object_status(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str,
        name: str,
        status: Dict[str, Any],
    ) -> bool:
        """Merge-patch the status subresource, returns False when the object is gone."""
        try:
            await self.custom_objects_api.patch_namespaced_custom_object_status(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                body={"status": status},
                _content_type="application/merge-patch+json",
            )
        except ApiException as ex:
            if not_found_error(ex):
                return False
            raise
        return True

    async def list_custom_objects(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str = None,
        **kwargs,
    ) -> Dict[str, Any]:
        if namespace:
            return await self.custom_objects_api.list_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural, **kwargs
            )
        return await self.custom_objects_api.list_cluster_custom_object(
            group=group, version=version, plural=plural, **kwargs
        )

    async def get_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> Optional[Dict[str, Any]]:
        try:
            return await self.custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise
