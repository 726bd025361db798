"""
vita_core.utils
---------------
Small helpers for base64, timestamps, identifiers, canonical JSON and hashing.
Canonical JSON keeps content hashes and privacy proofs deterministic.
"""

from __future__ import annotations
import base64, json, time, os, hashlib
from typing import Any, Dict

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def now_ms() -> int:
    return int(time.time() * 1000)

def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def random_bytes(length: int) -> bytes:
    return os.urandom(length)

def base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))

def new_position_id() -> str:
    # time-ordered prefix (fixed width base36 millis) + 64 random bits
    return f"pos_{base36(now_ms()).rjust(9, '0')}_{random_bytes(8).hex()}"

def canonical_json(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")

def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
