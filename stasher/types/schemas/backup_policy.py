import posixpath
from marshmallow import fields, validates, validates_schema, ValidationError
from stasher.types.base import BaseSchema
from stasher.types.models import (
    LabelSelectorRequirement,
    LabelSelector,
    RetentionPolicy,
    FileGroup,
    LocalBackend,
    RemoteBackend,
    Backend,
    VolumeMount,
    BackupPolicySpec,
)
from stasher.types.schemas.volume import validate_volume_sources
from stasher.utils.quantity import to_decimal
from stasher.utils.selectors import OPERATORS, EXISTS, DOES_NOT_EXIST


class LabelSelectorRequirementSchema(BaseSchema):
    __model__ = LabelSelectorRequirement

    key = fields.Str(data_key="key", required=True, allow_none=False)
    operator = fields.Str(data_key="operator", required=True, allow_none=False)
    values = fields.List(
        fields.Str(), data_key="values", allow_none=True, load_default=list
    )

    @validates_schema
    def validate_operator(self, data, **kwargs):
        operator = data.get("operator")
        if operator not in OPERATORS:
            raise ValidationError(
                f"Invalid operator: {operator}. Must be one of {', '.join(OPERATORS)}.",
                field_name="operator",
            )
        values = data.get("values") or []
        if operator in (EXISTS, DOES_NOT_EXIST):
            if values:
                raise ValidationError(
                    f"Values must be empty for operator {operator}.",
                    field_name="values",
                )
        elif not values:
            raise ValidationError(
                f"Values must be non-empty for operator {operator}.",
                field_name="values",
            )


class LabelSelectorSchema(BaseSchema):
    __model__ = LabelSelector

    match_labels = fields.Dict(
        keys=fields.Str(),
        values=fields.Str(),
        data_key="matchLabels",
        allow_none=True,
        load_default=dict,
    )
    match_expressions = fields.List(
        fields.Nested(LabelSelectorRequirementSchema()),
        data_key="matchExpressions",
        allow_none=True,
        load_default=list,
    )

    @validates_schema
    def validate_not_empty(self, data, **kwargs):
        if not data.get("match_labels") and not data.get("match_expressions"):
            raise ValidationError("Selector must not be empty.")


class RetentionPolicySchema(BaseSchema):
    __model__ = RetentionPolicy

    keep_last = fields.Int(data_key="keepLast", allow_none=True, load_default=None)
    keep_hourly = fields.Int(data_key="keepHourly", allow_none=True, load_default=None)
    keep_daily = fields.Int(data_key="keepDaily", allow_none=True, load_default=None)
    keep_weekly = fields.Int(data_key="keepWeekly", allow_none=True, load_default=None)
    keep_monthly = fields.Int(
        data_key="keepMonthly", allow_none=True, load_default=None
    )
    keep_yearly = fields.Int(data_key="keepYearly", allow_none=True, load_default=None)
    keep_tags = fields.List(
        fields.Str(), data_key="keepTags", allow_none=True, load_default=list
    )
    prune = fields.Bool(data_key="prune", allow_none=True, load_default=None)
    dry_run = fields.Bool(data_key="dryRun", allow_none=True, load_default=None)


class FileGroupSchema(BaseSchema):
    __model__ = FileGroup

    path = fields.Str(data_key="path", required=True, allow_none=False)
    tags = fields.List(fields.Str(), data_key="tags", allow_none=True, load_default=list)
    retention_policy = fields.Nested(
        RetentionPolicySchema(),
        data_key="retentionPolicy",
        allow_none=True,
        load_default=None,
    )

    @validates("path")
    def validate_path(self, value, **kwargs):
        if not posixpath.isabs(value):
            raise ValidationError(f"File group path must be absolute: {value}")


class LocalBackendSchema(BaseSchema):
    __model__ = LocalBackend

    path = fields.Str(data_key="path", required=True, allow_none=False)
    volume_source = fields.Dict(
        keys=fields.Str(),
        values=fields.Raw(),
        data_key="volumeSource",
        required=True,
        allow_none=False,
    )

    @validates("path")
    def validate_path(self, value, **kwargs):
        if not posixpath.isabs(value):
            raise ValidationError(f"Local backend path must be absolute: {value}")

    @validates("volume_source")
    def validate_volume_source(self, value, **kwargs):
        if len(value) != 1:
            raise ValidationError(
                "Local backend volumeSource must set exactly one volume source."
            )
        validate_volume_sources(value.keys(), "Local backend volumeSource")


class RemoteBackendSchema(BaseSchema):
    __model__ = RemoteBackend

    endpoint = fields.Str(data_key="endpoint", allow_none=True, load_default=None)
    bucket = fields.Str(data_key="bucket", allow_none=True, load_default=None)
    container = fields.Str(data_key="container", allow_none=True, load_default=None)
    prefix = fields.Str(data_key="prefix", allow_none=True, load_default=None)

    @validates_schema
    def validate_location(self, data, **kwargs):
        if not data.get("bucket") and not data.get("container"):
            raise ValidationError("Remote backend needs a bucket or a container.")


class BackendSchema(BaseSchema):
    __model__ = Backend

    storage_secret_name = fields.Str(
        data_key="storageSecretName", required=True, allow_none=False
    )
    local = fields.Nested(
        LocalBackendSchema(), data_key="local", allow_none=True, load_default=None
    )
    s3 = fields.Nested(
        RemoteBackendSchema(), data_key="s3", allow_none=True, load_default=None
    )
    gcs = fields.Nested(
        RemoteBackendSchema(), data_key="gcs", allow_none=True, load_default=None
    )
    azure = fields.Nested(
        RemoteBackendSchema(), data_key="azure", allow_none=True, load_default=None
    )
    swift = fields.Nested(
        RemoteBackendSchema(), data_key="swift", allow_none=True, load_default=None
    )
    b2 = fields.Nested(
        RemoteBackendSchema(), data_key="b2", allow_none=True, load_default=None
    )

    @validates_schema
    def validate_exactly_one(self, data, **kwargs):
        kinds = [k for k in ("local", *Backend.REMOTE_KINDS) if data.get(k) is not None]
        if len(kinds) != 1:
            found = ", ".join(kinds) if kinds else "none"
            raise ValidationError(
                f"Backend must define exactly one storage location, found: {found}."
            )


class VolumeMountSchema(BaseSchema):
    __model__ = VolumeMount

    name = fields.Str(data_key="name", required=True, allow_none=False)
    mount_path = fields.Str(data_key="mountPath", required=True, allow_none=False)
    sub_path = fields.Str(data_key="subPath", allow_none=True, load_default=None)


class BackupPolicySpecSchema(BaseSchema):
    __model__ = BackupPolicySpec

    selector = fields.Nested(
        LabelSelectorSchema(), data_key="selector", required=True, allow_none=False
    )
    file_groups = fields.List(
        fields.Nested(FileGroupSchema()),
        data_key="fileGroups",
        required=True,
        allow_none=False,
    )
    backend = fields.Nested(
        BackendSchema(), data_key="backend", required=True, allow_none=False
    )
    schedule = fields.Str(data_key="schedule", required=True, allow_none=False)
    volume_mounts = fields.List(
        fields.Nested(VolumeMountSchema()),
        data_key="volumeMounts",
        allow_none=True,
        load_default=list,
    )
    resources = fields.Dict(
        keys=fields.Str(),
        values=fields.Raw(),
        data_key="resources",
        allow_none=True,
        load_default=None,
    )

    @validates("file_groups")
    def validate_file_groups(self, value, **kwargs):
        if not value:
            raise ValidationError("At least one file group is required.")

    @validates("schedule")
    def validate_schedule(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("Schedule must not be empty.")

    @validates("resources")
    def validate_resources(self, value, **kwargs):
        for section in ("requests", "limits"):
            for name, quantity in ((value or {}).get(section) or {}).items():
                if to_decimal(quantity) is None:
                    raise ValidationError(
                        f"Invalid quantity for resources.{section}.{name}: {quantity}"
                    )
