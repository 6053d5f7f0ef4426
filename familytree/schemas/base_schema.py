from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# -----------------------------------------------------
# Wire format is camelCase (treeId, lastModified, ...)
# -----------------------------------------------------
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
