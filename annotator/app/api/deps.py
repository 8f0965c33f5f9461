"""Shared request dependencies for the API routers."""

from typing import Annotated, Optional

from fastapi import Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from annotator.app.services.storage import ObjectStorage


class CamelModel(BaseModel):
    """Schema base that speaks camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def get_storage(request: Request) -> ObjectStorage:
    """Get the application's object storage from app state."""
    return request.app.state.storage


StorageDep = Annotated[ObjectStorage, Depends(get_storage)]

# ?shareToken=... on read endpoints
ShareTokenQuery = Annotated[Optional[str], Query(alias="shareToken")]
