"""
PhonePad
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import asyncio
import dataclasses
from typing import Optional


@dataclasses.dataclass
class Session:
    sid: str
    slot: Optional[int]  # gamepad mode only
    connection: object = None
    controller: object = None  # ControllerStateMachine once the device is attached
    destroyed: bool = False
    announced: bool = False  # has received its connected message
    last_input: float = 0.0

    @property
    def label(self) -> str:
        if self.slot is not None:
            return f"Controller {self.slot}"
        return f"Session {self.sid[:8]}"

    def metadata(self) -> dict:
        return {"id": self.sid, "slot": self.slot}


class ServerData:

    def __init__(self):
        self.shutdown_event = asyncio.Event()
