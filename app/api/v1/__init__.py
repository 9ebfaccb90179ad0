from app.api.v1 import billing, events

__all__ = [
    "billing",
    "events",
]
