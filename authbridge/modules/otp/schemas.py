from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional


class EmailSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    redirect_to: Optional[str] = Field(default=None, alias="redirectTo")


class PhoneSendRequest(BaseModel):
    phone: Optional[str] = None


class EmailVerifyRequest(BaseModel):
    email: Optional[str] = None
    token: Optional[str] = Field(default=None, validation_alias=AliasChoices("token", "code"))


class PhoneVerifyRequest(BaseModel):
    phone: Optional[str] = None
    token: Optional[str] = Field(default=None, validation_alias=AliasChoices("token", "code"))
