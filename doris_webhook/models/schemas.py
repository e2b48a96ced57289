# =============================================================================
# Doris Webhook - Pydantic Schemas
# =============================================================================
"""
Request, record and response models for the Doris webhook.

``VideoEvent`` is what callers post, ``VideoRecord`` is the row shape the
``video_metrics`` table loads, and ``StreamLoadResult`` is the
acknowledgment Doris returns from a Stream Load call.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


EVENT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LOAD_SUCCESS = "Success"


class VideoEvent(BaseModel):
    """
    Request model for ``POST /video``.

    Attributes:
        project: Project the event belongs to
        event: Event name (play, pause, ...)
        user_agent: Caller's user agent, posted as ``userAgent``

    Example:
        {
            "project": "app1",
            "event": "play",
            "userAgent": "Mozilla/5.0"
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    project: StrictStr = Field(..., min_length=1, examples=["app1"])
    event: StrictStr = Field(..., min_length=1, examples=["play"])
    user_agent: StrictStr = Field(
        default="",
        alias="userAgent",
        examples=["Mozilla/5.0"],
    )

    @field_validator("user_agent", mode="before")
    @classmethod
    def null_user_agent(cls, v):
        """A JSON null user agent is treated as absent."""
        return "" if v is None else v


class VideoRecord(BaseModel):
    """
    One row of the ``video_metrics`` table.

    Field order matches the ``columns`` header sent with every
    Stream Load call.
    """

    project: str
    event: str
    user_agent: str = ""
    event_time: str

    @classmethod
    def from_event(cls, event: VideoEvent, now: Optional[datetime] = None) -> "VideoRecord":
        """
        Build a record from an inbound event.

        ``event_time`` is the server's local wall-clock time at
        handling time, not anything the client sent.
        """
        now = now or datetime.now()
        return cls(
            project=event.project,
            event=event.event,
            user_agent=event.user_agent,
            event_time=now.strftime(EVENT_TIME_FORMAT),
        )

    def to_stream_load_line(self) -> bytes:
        """
        Serialize for a ``read_json_by_line`` Stream Load body.

        Returns:
            bytes: One UTF-8 JSON object terminated by a newline
        """
        return self.model_dump_json().encode("utf-8") + b"\n"


STREAM_LOAD_COLUMNS = ",".join(VideoRecord.model_fields)


class StreamLoadResult(BaseModel):
    """
    Acknowledgment returned by a Doris Stream Load call.

    Doris uses CamelCase keys; missing keys fall back to empty values
    and unknown keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    txn_id: int = Field(default=0, alias="TxnId")
    label: str = Field(default="", alias="Label")
    status: str = Field(default="", alias="Status")
    message: str = Field(default="", alias="Message")
    number_total_rows: int = Field(default=0, alias="NumberTotalRows")
    number_loaded_rows: int = Field(default=0, alias="NumberLoadedRows")
    number_filtered_rows: int = Field(default=0, alias="NumberFilteredRows")
    number_unselected_rows: int = Field(default=0, alias="NumberUnselectedRows")
    load_bytes: int = Field(default=0, alias="LoadBytes")
    load_time_ms: int = Field(default=0, alias="LoadTimeMs")
    begin_txn_time_ms: int = Field(default=0, alias="BeginTxnTimeMs")
    stream_load_put_time_ms: int = Field(default=0, alias="StreamLoadPutTimeMs")
    read_data_time_ms: int = Field(default=0, alias="ReadDataTimeMs")
    write_data_time_ms: int = Field(default=0, alias="WriteDataTimeMs")
    commit_and_publish_time_ms: int = Field(default=0, alias="CommitAndPublishTimeMs")
    error_url: str = Field(default="", alias="ErrorURL")

    @property
    def succeeded(self) -> bool:
        return self.status == LOAD_SUCCESS


class VideoResponse(BaseModel):
    """
    Response model for a successful ``POST /video``.

    Attributes:
        message: Human-readable status message
        label: Stream Load label the row was written under
    """

    message: str = Field(default="Data processed successfully.")
    label: str = Field(..., description="Stream Load label")


class HealthResponse(BaseModel):
    """Response model for the health check endpoint."""

    status: str = Field(default="ok", description="Health status")
    service: str = Field(default="doris-webhook", description="Service name")


def generate_label() -> str:
    """
    Generate a Stream Load label.

    Doris treats a repeated label as an already-finished load, so every
    call gets a fresh random one.
    """
    return str(uuid4())
