from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
import bleach


class CamelModel(BaseModel):
    """Request bodies arrive in camelCase; attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def strip_tags(value):
    if value is None:
        return value
    return bleach.clean(value, tags=[], attributes={}, strip=True).strip()
