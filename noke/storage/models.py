# noke/storage/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional

from .storage_interfaces import ETAG_KEY


class StoredDocument(BaseModel):
    """Base model for records persisted in the document store.

    ``etag`` is filled from the store on read and never written back as part
    of the body.
    """
    id: str
    type: str
    partition_key: str
    etag: Optional[str] = Field(default=None, exclude=True)

    model_config = ConfigDict(from_attributes=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        data = {k: v for k, v in doc.items() if k != ETAG_KEY}
        return cls.model_validate({**data, "etag": doc.get(ETAG_KEY)})
