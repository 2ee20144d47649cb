from datetime import datetime
from typing import List

from pydantic import BaseModel

from textstream.models.stream import ChunkRecord, StreamBody, StreamStatus


class StreamCreated(BaseModel):
    stream_id: str


class StreamBodyResponse(BaseModel):
    """Durable snapshot of a stream"""

    stream_id: str
    text: str
    reasoning: str
    status: StreamStatus

    @classmethod
    def from_body(cls, body: StreamBody) -> "StreamBodyResponse":
        return cls(
            stream_id=body.stream_id,
            text=body.text,
            reasoning=body.reasoning,
            status=body.status,
        )


class ChunkResponse(BaseModel):
    sequence: int
    text: str
    reasoning: str

    @classmethod
    def from_record(cls, record: ChunkRecord) -> "ChunkResponse":
        return cls(sequence=record.sequence, text=record.text, reasoning=record.reasoning)


class ChunkListResponse(BaseModel):
    """Chunks committed after a given sequence, for incremental catch-up"""

    stream_id: str
    status: StreamStatus
    chunks: List[ChunkResponse]


class MessageResponse(BaseModel):
    id: int
    prompt: str
    response_stream_id: str
    created_at: datetime

    class Config:
        from_attributes = True
