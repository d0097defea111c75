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
import time
from typing import Callable, Optional

import voluptuous.error
from voluptuous import ALLOW_EXTRA, All, Any, Clamp, In, Optional as Maybe, Required, Schema

from controller_state import BUTTONS, CLICK_BUTTONS, VIBRATION_MAX_MS, VIBRATION_MIN_MS
from session_registry import SessionRegistry


class UnknownEvent(Exception): pass


def _not_bool(value):
    if isinstance(value, bool):
        raise voluptuous.error.Invalid("expected a number")
    return value


def _as_float(value):
    # json hands over arbitrarily large ints
    try:
        return float(value)
    except OverflowError as e:
        raise voluptuous.error.Invalid("number out of range") from e


Number = All(Any(int, float), _not_bool)
Delta = All(Number, _as_float)

BUTTON_SCHEMA = Schema({Required("button"): In(BUTTONS)}, extra=ALLOW_EXTRA)

EVENT_SCHEMAS = {
    "button-press": BUTTON_SCHEMA,
    "button-release": BUTTON_SCHEMA,
    "mouse-move": Schema({
        Required("deltaX"): Delta,
        Required("deltaY"): Delta,
    }, extra=ALLOW_EXTRA),
    "mouse-click": Schema({
        Maybe("button", default="left"): In(tuple(CLICK_BUTTONS)),
    }, extra=ALLOW_EXTRA),
    # clamped before any float conversion so an oversized value is still acknowledged
    "request-vibration": Schema({
        Maybe("intensity"): Any(None, All(Number, Clamp(min=0, max=1))),
        Maybe("duration"): Any(None, All(Number, Clamp(min=VIBRATION_MIN_MS, max=VIBRATION_MAX_MS))),
    }, extra=ALLOW_EXTRA),
}

# input that floods the shared keyboard/mouse; releases always get through so nothing stays held
DEBOUNCED_EVENTS = frozenset(("button-press", "mouse-move", "mouse-click"))


class InputEventRouter:

    def __init__(self, registry: SessionRegistry, debounce_ms: float = 0,
                 clock: Callable[[], float] = time.monotonic):
        self._registry = registry
        self._debounce = debounce_ms / 1000
        self._clock = clock
        self._last_accepted: Optional[float] = None
        self._handlers = {
            "button-press": self._handle_button_press,
            "button-release": self._handle_button_release,
            "mouse-move": self._handle_mouse_move,
            "mouse-click": self._handle_mouse_click,
            "request-vibration": self._handle_request_vibration,
        }

    def dispatch(self, sid: str, packet) -> Optional[dict]:
        session = self._registry.get(sid)
        if session is None or session.destroyed or session.controller is None:
            logging.debug(f"Dropping event for inactive session {sid}")
            return None

        try:
            event, data = self._parse(packet)
        except UnknownEvent as e:
            logging.debug(f"{session.label} sent an unusable event: {e}")
            return None

        if event in DEBOUNCED_EVENTS and self._debounced():
            logging.debug(f"{session.label} {event} debounced")
            return None
        session.last_input = self._clock()

        try:
            return self._handlers[event](session.controller, data)
        except Exception as e:
            logging.exception(e)
            logging.error(f"{session.label} failed to handle {event}")
            return None

    @staticmethod
    def _parse(packet) -> tuple[str, dict]:
        if not isinstance(packet, dict) or not isinstance(packet.get("event"), str):
            raise UnknownEvent("malformed packet")
        event = packet["event"]
        if event not in EVENT_SCHEMAS:
            raise UnknownEvent(f"unknown event {event!r}")
        data = packet.get("data")
        if data is None:
            data = {}
        try:
            return event, EVENT_SCHEMAS[event](data)
        except voluptuous.error.Invalid as e:
            raise UnknownEvent(f"{event}: {e}") from e

    def _debounced(self) -> bool:
        if self._debounce <= 0:
            return False
        now = self._clock()
        if self._last_accepted is not None and now - self._last_accepted < self._debounce:
            return True
        self._last_accepted = now
        return False

    @staticmethod
    def _handle_button_press(controller, data):
        controller.on_button(data["button"], True)

    @staticmethod
    def _handle_button_release(controller, data):
        controller.on_button(data["button"], False)

    @staticmethod
    def _handle_mouse_move(controller, data):
        controller.on_stick_delta(data["deltaX"], data["deltaY"])

    @staticmethod
    def _handle_mouse_click(controller, data):
        controller.on_click(data["button"])

    @staticmethod
    def _handle_request_vibration(controller, data) -> dict:
        return {
            "event": "vibrate",
            "data": controller.on_vibration_request(data.get("intensity"), data.get("duration")),
        }
