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

import logging
import threading
from typing import Callable, Optional

from server_data import Session


class CapacityExceeded(Exception):

    def __init__(self, reason: str, max_sessions: Optional[int]):
        super(CapacityExceeded, self).__init__(reason)
        self.reason = reason
        self.max_sessions = max_sessions


class SessionRegistry:
    """
    Live sessions and their slots.

    With ``max_sessions`` set, every session holds a slot in
    ``1..max_sessions`` and admission stops at capacity. With it unset
    (keyboard and mouse mode) sessions carry no slot and are not counted
    against anything.
    """

    def __init__(self, max_sessions: Optional[int] = None):
        self.max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._slots: dict[int, Session] = {}
        self._listeners: list[Callable[[], None]] = []

    @property
    def slotted(self) -> bool:
        return self.max_sessions is not None

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def admit(self, sid: str, connection=None) -> Session:
        with self._lock:
            if sid in self._sessions:
                logging.warning(f"Session {sid} admitted twice, keeping the existing one")
                return self._sessions[sid]
            slot = None
            if self.slotted:
                if len(self._sessions) >= self.max_sessions:
                    raise CapacityExceeded("Maximum number of controllers reached", self.max_sessions)
                slot = self._lowest_free_slot()
            session = Session(sid=sid, slot=slot, connection=connection)
            self._sessions[sid] = session
            if slot is not None:
                self._slots[slot] = session
        self._notify()
        return session

    def _lowest_free_slot(self) -> int:
        for slot in range(1, self.max_sessions + 1):
            if slot not in self._slots:
                return slot
        # unreachable while the count check above holds
        raise CapacityExceeded("No controller slots available", self.max_sessions)

    def release(self, sid: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.pop(sid, None)
            if session is None:
                return None
            if session.slot is not None and self._slots.get(session.slot) is session:
                del self._slots[session.slot]
        self._notify()
        return session

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logging.exception(e)

    def get(self, sid: str) -> Optional[Session]:
        return self._sessions.get(sid)

    def count(self) -> int:
        return len(self._sessions)

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def snapshot(self) -> list[dict]:
        sessions = self.sessions()
        # dict order is admission order, slots go first
        sessions.sort(key=lambda session: (session.slot is None, session.slot or 0))
        return [session.metadata() for session in sessions]
