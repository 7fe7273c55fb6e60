from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentityOut(CamelModel):
    id: Optional[str] = None
    display_name: Optional[str] = None


class StatusResponse(CamelModel):
    status: str
    phase: str
    is_ready: bool
    has_qr_code: bool
    has_socket: bool
    identity: Optional[IdentityOut] = None


class DisconnectRequest(CamelModel):
    delete_auth: bool = False
    # Schedule an automatic reconnect when credentials are kept
    reconnect: bool = True


class DisconnectResponse(CamelModel):
    status: str = "success"
    message: str
    deleted_auth: bool


class SendMessageForm(BaseModel):
    number: Optional[str] = None
    message: Optional[str] = None


class SendMessageResponse(CamelModel):
    status: str = "success"
    message: str
    message_id: Optional[str] = None


class GroupOut(CamelModel):
    id: str
    subject: Optional[str] = None
    participants: Optional[int] = None
    owner: Optional[str] = None
    creation: Optional[int] = None
    description: Optional[str] = None


class GroupsResponse(CamelModel):
    groups: List[GroupOut]
    total: int
