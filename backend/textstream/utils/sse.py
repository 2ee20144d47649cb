import orjson


def format_sse(event: str, data: dict) -> str:
    """Format data as SSE event"""
    return f"event: {event}\ndata: {orjson.dumps(data).decode()}\n\n"
