"""JSON helpers shared by the transports, discovery and the cli.

Device payloads are always compact json, so only the cli asks for indentation.
"""

from __future__ import annotations

from typing import Any

import orjson
from mashumaro.mixins.orjson import DataClassORJSONMixin

#: Mixin used by the serializable dataclasses in this package
DataClassJSONMixin = DataClassORJSONMixin

loads = orjson.loads


def dumps(obj: Any, *, indent: bool = False) -> str:
    """Dump JSON to a str."""
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2 if indent else None).decode()


def dumps_bytes(obj: Any) -> bytes:
    """Dump JSON to the utf-8 bytes sent on the wire."""
    return orjson.dumps(obj)
