from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class PollingStateKind(str, Enum):
    started = "Started"
    pending = "Pending"
    done = "Done"
    failed = "Failed"


class PollingState(BaseModel):
    kind: PollingStateKind
    handle: Any = None
    result: Any = None
    raw_response: Any = None

    @classmethod
    def from_wire(cls, value: Any) -> "PollingState":
        """Decode the externally tagged state sent by a worker"""
        if value == PollingStateKind.pending.value:
            return cls(kind=PollingStateKind.pending, raw_response=value)

        if isinstance(value, dict) and len(value) == 1:
            if "Done" in value:
                return cls(
                    kind=PollingStateKind.done,
                    result=value["Done"],
                    raw_response=value,
                )
            if value.get("Started") is not None:
                return cls(
                    kind=PollingStateKind.started,
                    handle=value["Started"],
                    raw_response=value,
                )

        return cls(kind=PollingStateKind.failed, raw_response=value)


class JobHandle(BaseModel):
    """A submitted job, bound to the server that accepted it"""

    model_config = ConfigDict(frozen=True)

    server: str
    handle: Any
