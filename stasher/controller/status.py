import logging

from stasher.resources.base import BaseResource
from stasher.resources.custom import CustomResource

logger = logging.getLogger(__name__)


class StatusWriter(BaseResource):
    """Writes the status subresource of custom objects."""

    async def set_phase(self, obj: CustomResource, phase: str) -> None:
        """Merge-patch `status.phase`, an object deleted meanwhile is ignored."""
        written = await self.patch_custom_object_status(
            group=obj.GROUP_NAME,
            version=obj.GROUP_VERSION,
            plural=obj.PLURAL_NAME,
            namespace=obj.namespace,
            name=obj.name,
            status={"phase": phase},
        )
        if written:
            logger.info(f"{obj.KIND} {obj.key} phase set to {phase}")
        else:
            logger.info(f"{obj.KIND} {obj.key} is gone, phase {phase} not written")
