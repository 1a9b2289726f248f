import uuid
from datetime import datetime, timezone

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
