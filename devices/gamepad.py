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

import itertools
import logging
from typing import Optional

from devices.base import (
    ANALOG_MAX,
    STICK_AXES,
    STICK_MAX,
    STICK_MIN,
    Axis,
    DeviceAdapter,
    DeviceCallFailure,
    DeviceInitFailure,
)

DEFAULT_BUTTON_CODES = {
    "dpad-up": "XUSB_GAMEPAD_DPAD_UP",
    "dpad-down": "XUSB_GAMEPAD_DPAD_DOWN",
    "dpad-left": "XUSB_GAMEPAD_DPAD_LEFT",
    "dpad-right": "XUSB_GAMEPAD_DPAD_RIGHT",
    "action-jump": "XUSB_GAMEPAD_A",
    "action-run": "XUSB_GAMEPAD_X",
    "action-interact": "XUSB_GAMEPAD_B",
    "action-crouch": "XUSB_GAMEPAD_Y",
    "left-click": "XUSB_GAMEPAD_LEFT_SHOULDER",
    "right-click": "XUSB_GAMEPAD_RIGHT_SHOULDER",
    "menu": "XUSB_GAMEPAD_START",
    "back": "XUSB_GAMEPAD_BACK",
}

MOTOR_AXES = (Axis.LEFT_MOTOR, Axis.RIGHT_MOTOR)


class GamepadHandle:
    """
    One virtual Xbox 360 target.

    Axis writes are buffered here and pushed to the target on commit, so the
    host observes one coherent report instead of partial updates.
    """

    def __init__(self, pad, number: int):
        self.pad = pad
        self.number = number
        self.axes: dict[Axis, int] = {axis: 0 for axis in Axis}
        self.connected = True

    @property
    def motors(self) -> tuple[int, int]:
        return self.axes[Axis.LEFT_MOTOR], self.axes[Axis.RIGHT_MOTOR]

    def __repr__(self):
        return f"<GamepadHandle #{self.number} connected={self.connected}>"


class GamepadAdapter(DeviceAdapter):
    multi_identity = True

    def __init__(self, button_codes: dict[str, str]):
        self._button_codes = dict(button_codes)
        self._vgamepad = None
        self._handles: set[GamepadHandle] = set()
        self._counter = itertools.count(1)
        self.button_codes: dict[str, object] = {}

    def initialize(self) -> None:
        try:
            import vgamepad
        except Exception as e:  # the ViGEm client loads (and may fail) at import time
            logging.exception(e)
            logging.error("vgamepad could not be loaded. Is the ViGEmBus driver installed?")
            raise DeviceInitFailure("vgamepad is not available") from e

        resolved = {}
        for name, code in self._button_codes.items():
            try:
                resolved[name] = getattr(vgamepad.XUSB_BUTTON, code)
            except AttributeError as e:
                raise DeviceInitFailure(f"Unknown gamepad button code {code!r} for {name!r}") from e
        self._vgamepad = vgamepad
        self.button_codes = resolved

        # creating a target is the only way to find out if the bus actually works
        try:
            probe = self.connect()
        except DeviceCallFailure as e:
            self._vgamepad = None
            raise DeviceInitFailure("Could not create a virtual controller") from e
        self.disconnect(probe)
        logging.info("Gamepad backend ready")

    def connect(self) -> GamepadHandle:
        if self._vgamepad is None:
            raise DeviceCallFailure("Gamepad backend is not initialized")
        try:
            pad = self._vgamepad.VX360Gamepad()
        except Exception as e:
            raise DeviceCallFailure(f"Could not create virtual controller: {e}") from e
        handle = GamepadHandle(pad, next(self._counter))
        self._handles.add(handle)
        logging.debug(f"Created virtual controller {handle}")
        return handle

    def set_button(self, handle: GamepadHandle, code, pressed: bool) -> None:
        pad = self._pad(handle)
        try:
            if pressed:
                pad.press_button(button=code)
            else:
                pad.release_button(button=code)
        except Exception as e:
            raise DeviceCallFailure(f"{handle} button {code} failed: {e}") from e

    def set_axis(self, handle: GamepadHandle, axis: Axis, value: int) -> None:
        self._pad(handle)
        low, high = (STICK_MIN, STICK_MAX) if axis in STICK_AXES else (0, ANALOG_MAX)
        if not low <= value <= high:
            raise DeviceCallFailure(f"{axis.value}={value} outside [{low}, {high}]")
        handle.axes[axis] = int(value)

    def commit(self, handle: GamepadHandle) -> None:
        pad = self._pad(handle)
        axes = handle.axes
        try:
            pad.left_joystick(x_value=axes[Axis.LEFT_STICK_X], y_value=axes[Axis.LEFT_STICK_Y])
            pad.right_joystick(x_value=axes[Axis.RIGHT_STICK_X], y_value=axes[Axis.RIGHT_STICK_Y])
            pad.left_trigger(value=axes[Axis.LEFT_TRIGGER])
            pad.right_trigger(value=axes[Axis.RIGHT_TRIGGER])
            pad.update()
        except Exception as e:
            raise DeviceCallFailure(f"{handle} update failed: {e}") from e
        if any(handle.axes[axis] for axis in MOTOR_AXES):
            # ViGEm only reports rumble from the game side, the motors cannot be driven from here
            logging.debug(f"{handle} motors {handle.motors} tracked only")

    def disconnect(self, handle: GamepadHandle) -> None:
        if not handle.connected:
            return
        handle.connected = False
        self._handles.discard(handle)
        try:
            handle.pad.reset()
            handle.pad.update()
        except Exception as e:
            logging.warning(f"Could not reset {handle} before removal: {e}")
        # dropping the last reference removes the target from the bus
        handle.pad = None
        logging.debug(f"Removed virtual controller #{handle.number}")

    def shutdown(self) -> None:
        for handle in list(self._handles):
            self.disconnect(handle)
        self._vgamepad = None

    @staticmethod
    def _pad(handle: Optional[GamepadHandle]):
        if handle is None or not handle.connected:
            raise DeviceCallFailure(f"{handle} is not connected")
        return handle.pad
