import time
import uuid


def generate_id() -> str:
    return uuid.uuid4().hex


def generate_request_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:13]}"
