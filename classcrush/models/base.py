import time
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from classcrush.core.errors import SchemaMismatch


RecordT = TypeVar("RecordT", bound="StoredRecord")


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def as_id_list(value: Any) -> List[str]:
    """
    Normalise an id-set as the database returns it.
    Arrays can come back as lists, as index-keyed dicts when sparse, or be absent.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        value = list(value.values())
    return [str(item) for item in value if item]


class StoredRecord(BaseModel):
    """Base for records decoded at the store boundary."""

    class Config:
        populate_by_name = True
        extra = "ignore"

    @classmethod
    def from_record(cls: Type[RecordT], key: str, data: Any) -> RecordT:
        """Decode a stored value; the child key fills in a missing ``id``."""
        if not isinstance(data, dict):
            raise SchemaMismatch(
                f"{cls.__name__} at '{key}' is not an object",
                detail={"key": key},
            )
        payload = dict(data)
        if "id" in cls.model_fields and not payload.get("id"):
            payload["id"] = key
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise SchemaMismatch(
                f"{cls.__name__} at '{key}' does not match its schema",
                detail={"key": key, "errors": e.errors(include_url=False)},
            ) from e

    def to_record(self) -> dict:
        """Serialise with stored (camelCase) field names; nulls are not written."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
