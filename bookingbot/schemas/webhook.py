from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class WebhookMetadata(BaseModel):
    sender: Optional[str] = None
    timestamp: Optional[int] = None
    messageId: Optional[str] = None
    remoteJid: Optional[str] = None
    fromMe: bool = Field(default=False, validation_alias=AliasChoices("fromMe", "from_me"))
    instanceId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instanceId", "instance_id", "instance"),
    )


class WebhookLocation(BaseModel):
    lat: float = Field(validation_alias=AliasChoices("lat", "latitude", "degreesLatitude"))
    lng: float = Field(validation_alias=AliasChoices("lng", "longitude", "degreesLongitude"))


class WebhookBody(BaseModel):
    messageType: Optional[str] = "text"
    message: Optional[str] = None
    metadata: Optional[WebhookMetadata] = None
    mediaData: Optional[Any] = None
    location: Optional[WebhookLocation] = None


class ConnectionEvent(BaseModel):
    event: str = "connection.update"
    connection: Optional[str] = Field(default=None, validation_alias=AliasChoices("connection", "status", "state"))
    statusCode: Optional[int] = Field(default=None, validation_alias=AliasChoices("statusCode", "status_code", "code"))
    qr: Optional[str] = None


class WebhookResponse(BaseModel):
    success: bool
    message: str
    state: Optional[str] = None


class ConnectionInfo(BaseModel):
    status: str
    ready: bool
    logged_out: bool
    retry_count: int
    last_status_code: Optional[int] = None
    qr: Optional[str] = None
