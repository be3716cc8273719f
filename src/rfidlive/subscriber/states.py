"""Connection states of the live channel, as tagged values.

  Connecting → Connected → Disconnected | Errored → Connecting → ...
                                     close() → Closed (terminal)

Each state is a small frozen dataclass carrying what is worth showing
next to the status dot: the attempt number, the close code, the error.
`name` is the string the dashboard displays.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional, Union


@dataclass(frozen=True)
class Connecting:
    attempt: int
    name: ClassVar[str] = "connecting"


@dataclass(frozen=True)
class Connected:
    since: datetime
    name: ClassVar[str] = "connected"


@dataclass(frozen=True)
class Disconnected:
    code: int
    reason: str = ""
    name: ClassVar[str] = "disconnected"


@dataclass(frozen=True)
class Errored:
    reason: str
    name: ClassVar[str] = "error"


@dataclass(frozen=True)
class Closed:
    name: ClassVar[str] = "closed"


ConnectionState = Union[Connecting, Connected, Disconnected, Errored, Closed]


def is_terminal(state: Optional[ConnectionState]) -> bool:
    return isinstance(state, Closed)
