from marshmallow import fields, validates, ValidationError
from stasher.types.base import BaseSchema
from stasher.types.models import WorkloadReference, RecoveryRequestSpec
from stasher.types.schemas.volume import validate_volume_sources


class WorkloadReferenceSchema(BaseSchema):
    __model__ = WorkloadReference

    kind = fields.Str(data_key="kind", required=True, allow_none=False)
    name = fields.Str(data_key="name", required=True, allow_none=False)


class RecoveryRequestSpecSchema(BaseSchema):
    __model__ = RecoveryRequestSpec

    policy = fields.Str(data_key="policy", required=True, allow_none=False)
    node_name = fields.Str(data_key="nodeName", allow_none=True, load_default=None)
    workload = fields.Nested(
        WorkloadReferenceSchema(),
        data_key="workload",
        allow_none=True,
        load_default=None,
    )
    volumes = fields.List(
        fields.Dict(keys=fields.Str(), values=fields.Raw(), allow_none=False),
        data_key="volumes",
        required=True,
        allow_none=False,
    )

    @validates("policy")
    def validate_policy(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("Policy name must not be empty.")

    @validates("volumes")
    def validate_volumes(self, value, **kwargs):
        if not value:
            raise ValidationError("At least one volume is required.")
        for volume in value:
            if not volume.get("name"):
                raise ValidationError("Every volume needs a name.")
            validate_volume_sources(
                (k for k in volume if k != "name"), f"Volume {volume['name']}"
            )
