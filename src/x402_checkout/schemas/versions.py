from enum import IntEnum


class ProtocolVersion(IntEnum):
    Version1 = 1
    Version2 = 2

    @classmethod
    def from_value(cls, value):
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Unsupported protocol version: {value}")


CURRENT_VERSION = ProtocolVersion.Version2
