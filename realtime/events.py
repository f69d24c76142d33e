"""
Change feed payloads.

Every committed INSERT/UPDATE/DELETE on a watched table is published as one
ChangeEvent. Subscribers filter with a Topic (table plus one column equality).
"""

from datetime import datetime, date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from enums.change_type import ChangeType


def to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ChangeEvent(BaseModel):
    table: str
    type: ChangeType
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None
    committed_at: Optional[datetime] = None

    def get(self, column: str) -> Any:
        """Column value from the new image, falling back to the old one (deletes)."""
        if self.record is not None and column in self.record:
            return self.record[column]
        if self.old_record is not None:
            return self.old_record.get(column)
        return None

    def changed(self, column: str) -> bool:
        if self.type != ChangeType.UPDATE or self.old_record is None or self.record is None:
            return True
        return self.old_record.get(column) != self.record.get(column)


class Topic(BaseModel):
    """Subscription filter, e.g. Topic(table="baskets", column="pool_id", value=7)."""
    table: str
    column: Optional[str] = None
    value: Any = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.column is None:
            return True
        expected = to_json_value(self.value)
        for image in (event.record, event.old_record):
            if image is not None and image.get(self.column) == expected:
                return True
        return False
