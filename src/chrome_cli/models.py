"""Request schemas for the daemon's HTTP endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict, Field


class CommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PageScopedRequest(CommandRequest):
    page_id: str | None = Field(default=None, alias="pageId")


class NavigateRequest(PageScopedRequest):
    url: str


class ScreenshotRequest(PageScopedRequest):
    output: str | None = None
    full_page: bool = Field(default=False, alias="fullPage")


class ClickRequest(PageScopedRequest):
    selector: str


class FillRequest(PageScopedRequest):
    selector: str
    value: str


class EvaluateRequest(PageScopedRequest):
    script: str


class WaitRequest(PageScopedRequest):
    selector: str | None = None
    text: str | None = None
    timeout: int | None = None


class SnapshotRequest(PageScopedRequest):
    output: str | None = None


class NewPageRequest(CommandRequest):
    url: str | None = None


class SelectPageRequest(CommandRequest):
    page_id: str = Field(alias="pageId")


class ClosePageRequest(CommandRequest):
    page_id: str | None = Field(default=None, alias="pageId")
