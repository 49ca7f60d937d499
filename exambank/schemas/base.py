from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models exchanged with callers use camelCase keys, matching the stored documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
