from kubernetes_asyncio.client import (
    RbacV1Subject,
    V1ObjectMeta,
    V1OwnerReference,
    V1RoleBinding,
    V1RoleRef,
    V1ServiceAccount,
)

from stasher.resources.base import BaseResource
from stasher.resources.custom import CustomResource

SIDECAR_CLUSTER_ROLE = "stasher-sidecar"


class RbacEnsurer(BaseResource):
    """Creates the service account a recovery Job runs as."""

    def prepare_service_account(self, name: str, owner: CustomResource) -> V1ServiceAccount:
        return V1ServiceAccount(
            metadata=V1ObjectMeta(
                name=name,
                namespace=owner.namespace,
                owner_references=[self.prepare_owner_reference(owner)],
            )
        )

    def prepare_role_binding(self, name: str, owner: CustomResource) -> V1RoleBinding:
        return V1RoleBinding(
            metadata=V1ObjectMeta(
                name=name,
                namespace=owner.namespace,
                owner_references=[self.prepare_owner_reference(owner)],
            ),
            role_ref=V1RoleRef(
                api_group="rbac.authorization.k8s.io",
                kind="ClusterRole",
                name=SIDECAR_CLUSTER_ROLE,
            ),
            subjects=[
                RbacV1Subject(kind="ServiceAccount", name=name, namespace=owner.namespace)
            ],
        )

    @staticmethod
    def prepare_owner_reference(owner: CustomResource) -> V1OwnerReference:
        return V1OwnerReference(
            api_version=owner.api_version(),
            kind=owner.KIND,
            name=owner.name,
            uid=owner.uid,
        )

    async def ensure(self, name: str, owner: CustomResource) -> None:
        """Create a ServiceAccount and a RoleBinding to the sidecar ClusterRole.

        Both are named `name`; objects that already exist are left as they are.
        """
        await self.create_service_account(
            owner.namespace, self.prepare_service_account(name, owner)
        )
        await self.create_role_binding(owner.namespace, self.prepare_role_binding(name, owner))
