"""Device descriptor types shared by the enumerator and backends."""

from dataclasses import dataclass
from enum import Enum


class DeviceKind(Enum):
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class DeviceDescriptor:
    id: str
    name: str
    kind: DeviceKind = DeviceKind.VIDEO

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.kind.value}


__all__ = ["DeviceDescriptor", "DeviceKind"]
