from common.events import EventBus
from common.ids import generate_id, generate_request_id
from common.jsonio import atomic_write_json, load_json, loads_or_none

__all__ = [
    "EventBus",
    "generate_id",
    "generate_request_id",
    "load_json",
    "loads_or_none",
    "atomic_write_json",
]
