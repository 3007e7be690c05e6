from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str
    subject: str
    html_content: str = Field(alias="content")
    origin_address: str | None = Field(default=None, alias="from")
    origin_name: str | None = Field(default=None, alias="fromName")

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)


class MailResponse(BaseModel):
    to: str = ""
    subject: str = ""
    message: str = ""


class MailErrorBody(BaseModel):
    message: str = ""
    code: int = 0
