from typing import Any


def ok(message: str, data: Any = None) -> dict:
    """Success envelope shared by every endpoint."""
    return {"success": True, "message": message, "data": data}
