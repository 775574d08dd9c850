"""Pydantic models for WhatsApp gateway events and operator requests."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundMessage(BaseModel):
    """A chat message observed by the WhatsApp session."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    sender: str = Field(..., alias="from", description="Chat id of the author")
    recipient: str = Field(..., alias="to", description="Chat id of the receiving side")
    body: str = ""
    from_me: bool = Field(False, alias="fromMe", description="Sent by the session owner")

    @property
    def counterpart(self) -> str:
        """Chat id of the other side of the conversation."""
        return self.recipient if self.from_me else self.sender

    @property
    def reply(self) -> str:
        return self.body.strip()


class GatewayEvent(BaseModel):
    """Event pushed by the WhatsApp gateway."""

    model_config = ConfigDict(extra="allow")

    type: Literal["message", "ready", "disconnected"]
    message: Optional[InboundMessage] = None
    reason: Optional[str] = None


class Contact(BaseModel):
    """Resolved contact behind a chat id."""

    number: Optional[str] = None
    id: Optional[str] = None

    @property
    def phone(self) -> str:
        """Real phone number, falling back to the user part of the chat id."""
        if self.number:
            return self.number
        return (self.id or "").split("@", 1)[0]


class SendConfirmationRequest(BaseModel):
    """Manual initial-message request from the dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(..., alias="orderId")


class TemplateUpdate(BaseModel):
    """Dashboard edit of a message template."""

    content: str
    name: Optional[str] = None
    variables: Optional[List[str]] = None


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    content: str
    variables: List[str] = Field(default_factory=list)
