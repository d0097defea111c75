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
import json
import logging
import uuid
from typing import Optional

import websockets.exceptions
from websockets.asyncio.server import broadcast

from config import MODE_GAMEPAD, MODE_KEYBOARD_MOUSE
from controller_state import ControllerStateMachine, GamepadController, KeyboardMouseController
from devices.base import DeviceAdapter, DeviceCallFailure
from input_router import InputEventRouter
from server_data import Session
from session_registry import CapacityExceeded, SessionRegistry
from vibration import VibrationScheduler

"""
Sessions start here and end here.

Admission, device attachment and teardown all go through this class, so a
session always leaves the same way: timers cancelled, neutral reset, device
detached, slot released, everyone told the new count.
"""


class SessionManager:

    def __init__(self, config, loop: asyncio.AbstractEventLoop, adapter: DeviceAdapter):
        self._config = config
        self._loop = loop
        self._adapter = adapter
        self._settings = self._config["controller"]
        self._mode = self._settings["mode"]

        self.max_sessions: Optional[int] = self._settings["max_sessions"] if adapter.multi_identity else None
        self.registry = SessionRegistry(self.max_sessions)
        self.registry.add_listener(self.broadcast_session_count)
        # only the shared keyboard/mouse needs flood protection, gamepad updates just set state
        debounce = self._settings["debounce_ms"] if self._mode == MODE_KEYBOARD_MOUSE else 0
        self.router = InputEventRouter(self.registry, debounce)
        self._vibration = VibrationScheduler()
        self._attach_handlers = {
            MODE_GAMEPAD: self._attach_gamepad,
            MODE_KEYBOARD_MOUSE: self._attach_keyboard_mouse,
        }

    async def client_connected(self, connection) -> Optional[Session]:
        sid = uuid.uuid4().hex
        try:
            session = self.registry.admit(sid, connection)
        except CapacityExceeded as e:
            logging.info(f"Rejected a client: {e.reason} ({self.registry.count()}/{self.max_sessions})")
            await self._reject(connection, e.reason)
            return None

        try:
            session.controller = self._attach_handlers[self._mode](session)
        except DeviceCallFailure as e:
            logging.error(f"Could not attach a device for {session.label}: {e}")
            session.destroyed = True
            self.registry.release(sid)
            await self._reject(connection, "Failed to create virtual controller")
            return None

        logging.info(f"{session.label} connected! ({self.registry.count()}/{self._max_label()} total)")
        await self.send_to_client(session, {
            "event": "connected",
            "data": {
                "message": "Controller connected successfully!",
                "slot": session.slot,
                "totalSessions": self.registry.count(),
                "maxSessions": self.max_sessions,
            },
        })
        session.announced = True
        # the broadcast during admission skipped this client
        await self.send_to_client(session, self.session_count_packet())
        return session

    def _attach_gamepad(self, session: Session) -> ControllerStateMachine:
        handle = self._adapter.connect()
        return GamepadController(session.label, self._loop, self._settings, self._adapter, handle,
                                 vibration=self._vibration)

    def _attach_keyboard_mouse(self, session: Session) -> ControllerStateMachine:
        return KeyboardMouseController(session.label, self._loop, self._settings, self._adapter,
                                       vibration=self._vibration)

    async def _reject(self, connection, reason: str):
        try:
            await connection.send(json.dumps({
                "event": "connection-rejected",
                "data": {"reason": reason, "maxSessions": self.max_sessions},
            }))
        except websockets.exceptions.ConnectionClosed:
            logging.debug("Rejected client was already gone")

    def client_disconnected(self, session: Session, reason: str = "connection closed"):
        if session.destroyed:
            return
        logging.info(f"{session.label} disconnected: {reason}")
        self.end_session(session)

    def end_session(self, session: Session):
        session.destroyed = True
        controller, session.controller = session.controller, None
        if controller is not None:
            controller.teardown()
        self.registry.release(session.sid)

    async def handle_packet(self, session: Session, packet) -> None:
        reply = self.router.dispatch(session.sid, packet)
        if reply is not None:
            await self.send_to_client(session, reply)

    async def send_to_client(self, session: Session, packet: dict):
        if session.connection is None:
            logging.debug(f"Wanted to send data to {session.label} without a connection")
            return
        try:
            await session.connection.send(json.dumps(packet))
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"{session.label} closed before {packet.get('event')} could be sent")

    def session_count_packet(self) -> dict:
        return {
            "event": "session-count",
            "data": {"total": self.registry.count(), "max": self.max_sessions},
        }

    def broadcast_session_count(self):
        connections = [session.connection for session in self.registry.sessions()
                       if session.connection is not None and session.announced]
        if not connections:
            return
        broadcast(connections, json.dumps(self.session_count_packet()))

    def shutdown(self):
        for session in self.registry.sessions():
            logging.info(f"Releasing {session.label}")
            self.end_session(session)

    def _max_label(self):
        return self.max_sessions if self.max_sessions is not None else "unlimited"
