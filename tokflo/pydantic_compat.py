import pydantic
from packaging.version import parse
from pydantic.version import VERSION

version_parsed = parse(str(VERSION))

PydanticVersion = 2 if version_parsed.major >= 2 else 1

BaseModel: type = pydantic.BaseModel
Field: type = pydantic.Field
PrivateAttr: type = pydantic.PrivateAttr


def to_camel(name: str) -> str:
    """``user_id`` -> ``userId``; the field naming the TokFlo clients write."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


if PydanticVersion == 2:
    from pydantic import ConfigDict

    class CamelModel(BaseModel):
        """Base for every document and embedded value: camelCase on the wire."""

        model_config = ConfigDict(
            populate_by_name=True,
            alias_generator=to_camel,
            arbitrary_types_allowed=True,
            use_enum_values=True,
            validate_default=True,
        )

else:

    class CamelModel(BaseModel):  # type: ignore[no-redef]
        """Base for every document and embedded value: camelCase on the wire."""

        class Config:
            allow_population_by_field_name = True
            alias_generator = to_camel
            arbitrary_types_allowed = True
            use_enum_values = True
            validate_all = True


# Pydantic V1: __fields__; Pydantic V2: model_fields
def get_model_fields(cls: type) -> dict:
    if PydanticVersion == 1:
        return getattr(cls, "__fields__", {})
    return getattr(cls, "model_fields", {})  # type: ignore[attr-defined]


def model_dump_compat(model, **kwargs) -> dict:
    if PydanticVersion == 1:
        return model.dict(**kwargs)
    return model.model_dump(**kwargs)


def before_validator(func):
    """
    Run ``func(cls, values)`` on the raw input dict before field validation.
    Pydantic V1: root_validator(pre=True); Pydantic V2: model_validator(mode="before").
    """
    if PydanticVersion == 1:
        return pydantic.root_validator(pre=True, allow_reuse=True)(func)
    return pydantic.model_validator(mode="before")(classmethod(func))


__all__ = [
    "BaseModel",
    "CamelModel",
    "Field",
    "PrivateAttr",
    "before_validator",
    "get_model_fields",
    "model_dump_compat",
    "to_camel",
    "PydanticVersion",
]
