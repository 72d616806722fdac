from pydantic import BaseModel
from typing import Literal, Optional


class PinSetRequest(BaseModel):
    pin: Optional[str] = None


class PinLoginRequest(BaseModel):
    method: Optional[Literal["email", "phone"]] = None
    user: Optional[str] = None
    pin: Optional[str] = None
