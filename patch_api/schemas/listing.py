from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

Dir = Literal["asc", "desc"]

class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    LIKE = "like"
    IN = "in"

class FilterSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOperator
    values: tuple[str, ...]

class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    dir: Dir = "asc"

class TagPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    key: str
    value: Optional[str] = None

class PageRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    limit: int = Field(20, ge=-1)
    offset: int = Field(0, ge=0)

    @property
    def unlimited(self) -> bool:
        return self.limit == -1

class PageMeta(BaseModel):
    total_items: int
    limit: int
    offset: int

class Links(BaseModel):
    first: Optional[str] = None
    last: Optional[str] = None
    next: Optional[str] = None
    previous: Optional[str] = None

