from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or "User"


class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramMessage(BaseModel):
    message_id: Optional[int] = None
    date: Optional[int] = None
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")  # "from" is reserved in Python
    text: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None


class SetupResponse(BaseModel):
    success: bool
    webhook: Optional[str] = None
    telegram_response: Optional[dict] = None
    error: Optional[str] = None
