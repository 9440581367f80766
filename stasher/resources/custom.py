from typing import Any, ClassVar, Dict, Generic, Optional, Type, TypeVar

from marshmallow import Schema, ValidationError

from stasher.utils.errors import InvalidResourceError
from stasher.utils.helpers import meta_namespace_key
from stasher.utils.quantity import spec_equal

SpecT = TypeVar("SpecT")


class CustomResource(Generic[SpecT]):
    """Typed view over a custom object body read from the API server.

    Subclasses name their kind and the marshmallow schema that validates the
    spec. The raw body is kept untouched so the spec can be diffed and
    recorded exactly as the operator wrote it.
    """

    GROUP_NAME: ClassVar[str] = "stasher.io"
    GROUP_VERSION: ClassVar[str] = "v1alpha1"
    KIND: ClassVar[str]
    PLURAL_NAME: ClassVar[str]
    INVALID_REASON: ClassVar[str]
    spec_schema: ClassVar[Type[Schema]]

    body: Dict[str, Any]

    def __init__(self, body: Dict[str, Any]):
        self.body = body
        self._spec_model: Optional[SpecT] = None

    @classmethod
    def api_version(cls) -> str:
        return f"{cls.GROUP_NAME}/{cls.GROUP_VERSION}"

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.body.get("metadata") or {}

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get("resourceVersion")

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.get("annotations") or {}

    @property
    def spec(self) -> Dict[str, Any]:
        return self.body.get("spec") or {}

    @property
    def status(self) -> Dict[str, Any]:
        return self.body.get("status") or {}

    @property
    def key(self) -> str:
        return meta_namespace_key(self.namespace, self.name)

    def event_body(self) -> Dict[str, Any]:
        """Minimal body needed to build an event's involved object reference."""
        return {
            "apiVersion": self.api_version(),
            "kind": self.KIND,
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "uid": self.uid,
                "resourceVersion": self.resource_version,
            },
        }

    def validate(self) -> SpecT:
        """Load the spec through its schema, raising InvalidResourceError."""
        if self._spec_model is None:
            try:
                self._spec_model = self.spec_schema().load(self.spec)
            except ValidationError as ex:
                raise InvalidResourceError(self.KIND, self.key, ex.messages) from ex
        return self._spec_model

    @property
    def spec_model(self) -> SpecT:
        return self.validate()

    def spec_equal(self, other: Optional["CustomResource"]) -> bool:
        """Compare specs only, quantity-valued fields by parsed value."""
        if other is None:
            return False
        return spec_equal(self.spec, other.spec)

    def __repr__(self) -> str:
        return f"<{self.KIND} {self.key} rv={self.resource_version}>"
