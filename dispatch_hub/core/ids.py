import uuid

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def gen_local_tracking_number() -> str:
    # Used when a carrier did not assign one (failed attempts included)
    return f"LOCAL-{uuid.uuid4().hex[:12].upper()}"
