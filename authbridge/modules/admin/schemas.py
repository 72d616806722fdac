from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Optional


class PinForUserRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    pin: Optional[str] = None


class BackfillEmailRequest(BaseModel):
    # Left untyped so a non-list body gets the same 400 as an empty one
    user_ids: Any = Field(default=None, validation_alias=AliasChoices("userIds", "user_ids"))
