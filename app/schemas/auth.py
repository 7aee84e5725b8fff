from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendOTPRequest(CamelModel):
    phone: str = Field(min_length=1)
    event_id: str = Field(min_length=1)


class VerifyOTPRequest(CamelModel):
    phone: str = Field(min_length=1)
    otp: str = Field(min_length=1, max_length=12)
    event_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str | None = None
    table_id: str | None = None


class GuestResponse(CamelModel):
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    table_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionTokenResponse(CamelModel):
    token: str
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminLoginRequest(BaseModel):
    email: str
    password: str


class AdminLoginResponse(CamelModel):
    admin_id: str
    email: str
    name: str
    role: str
