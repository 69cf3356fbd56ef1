import time
from dataclasses import asdict, dataclass
from typing import Any, Dict


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AccelerationSample:
    x: float
    y: float
    z: float
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccelerationSample":
        timestamp = data.get("timestamp")
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            z=float(data["z"]),
            timestamp=int(timestamp) if timestamp is not None else now_ms(),
        )
