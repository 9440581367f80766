from types import SimpleNamespace
from typing import Any, Dict
from marshmallow import INCLUDE, Schema, post_load

JSON = Dict[str, Any]
MAX_REPR_LEN = 60


class BaseModel(SimpleNamespace):
    """BaseModel that all spec models inherit from.

    Note:
        Nested schemas build their own models, so by the time a model is
        created every nested mapping is either a model or a plain dict that
        is passed through untouched (for example raw core/v1 volume sources).
    Args:
        **kwargs: All passed parameters as converted to instance attributes.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.__dict__.update(kwargs)

    def __repr__(self) -> str:
        repr_ = super().__repr__()
        if len(repr_) > MAX_REPR_LEN:
            return repr_[:MAX_REPR_LEN] + " ...)"
        return repr_


class UnknownModel(BaseModel):
    """A convenience class that inherits from `BaseModel`."""


class BaseSchema(Schema):
    """The default schema for all spec models."""

    __model__: Any = UnknownModel
    """Determine the object that is created when the load method is called."""

    class Meta:
        unknown = INCLUDE

    @post_load
    def make_object(self, data: JSON, **kwargs: Any) -> "__model__":
        """Build model for the given `__model__` class attribute.
        Args:
            data: The JSON dictionary to use to build the model.
            **kwargs: Unused but required to match signature of `Schema.make_object`
        Returns:
            An instance of the `__model__` class.
        """
        return self.__model__(**data)
