from pydantic import BaseModel, Field


class ChatStreamRequest(BaseModel):
    """Body of POST /chat-stream: the stream to drive"""
    stream_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")


class MessageCreate(BaseModel):
    """Body of POST /messages"""
    prompt: str = Field(..., min_length=1)
