from __future__ import annotations

from .client import RemotePasswordRepository, build_base_url
from .codec import insert_to_wire, patch_to_wire, record_from_wire, record_to_wire

__all__ = [
    "RemotePasswordRepository",
    "build_base_url",
    "insert_to_wire",
    "patch_to_wire",
    "record_from_wire",
    "record_to_wire",
]
