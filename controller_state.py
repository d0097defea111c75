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
import logging
import math
from typing import Optional

from devices.base import ANALOG_MAX, STICK_MAX, Axis, DeviceCallFailure

BUTTONS = (
    "dpad-up",
    "dpad-down",
    "dpad-left",
    "dpad-right",
    "action-jump",
    "action-run",
    "action-interact",
    "action-crouch",
    "left-click",
    "right-click",
    "menu",
    "back",
)

CLICK_BUTTONS = {
    "left": "left-click",
    "right": "right-click",
}

VIBRATION_MIN_MS = 100
VIBRATION_MAX_MS = 5000
DEFAULT_VIBRATION_INTENSITY = 0.5


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _finite(value: float) -> float:
    return 0.0 if math.isnan(value) else value


def stick_transform(dx: float, dy: float, sensitivity: float, deadzone: float) -> tuple[int, int]:
    """
    Turn one touch delta into a stick position.

    The delta is limited to the unit range, scaled by ``sensitivity`` and
    limited again, then any axis under ``deadzone`` snaps to zero. Y is
    inverted so dragging up looks up.
    """

    def axis(value: float) -> float:
        value = _clamp(_finite(value), -1.0, 1.0) * sensitivity
        value = _clamp(_finite(value), -1.0, 1.0)
        if abs(value) < deadzone:
            return 0.0
        return value

    x, y = axis(dx), axis(dy)
    return round(x * STICK_MAX), round(-y * STICK_MAX)


class ControllerStateMachine:
    """
    Authoritative input state of one session.

    Only the router writes to it, and only for its own session. Every device
    write goes through ``_device_call`` so a backend failure costs one update,
    never the session. After ``teardown`` nothing reaches the device.
    """

    def __init__(self, label: str, loop: asyncio.AbstractEventLoop, settings: dict, vibration=None):
        self.label = label
        self._loop = loop
        self._vibration = vibration
        self.sensitivity = float(settings["stick_sensitivity"])
        self.deadzone = float(settings["stick_deadzone"])
        self.click_release = settings["click_release_ms"] / 1000

        self.pressed_buttons: set[str] = set()
        self.sticks = {"left": (0, 0), "right": (0, 0)}
        self.triggers = {"left": 0, "right": 0}
        self.motors = {"left": 0, "right": 0}

        self.attached = True
        self.vibration_stop: Optional[asyncio.TimerHandle] = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._click_releases: dict[str, asyncio.TimerHandle] = {}

    # timers

    def call_later(self, delay: float, callback, *args) -> asyncio.TimerHandle:
        handle: Optional[asyncio.TimerHandle] = None

        def fire():
            self._timers.discard(handle)
            if self.attached:
                callback(*args)

        handle = self._loop.call_later(delay, fire)
        self._timers.add(handle)
        return handle

    def cancel_timer(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancel()
        self._timers.discard(handle)

    def cancel_timers(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._click_releases.clear()
        self.vibration_stop = None

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # events

    def on_button(self, name: str, pressed: bool) -> None:
        if not self.attached:
            return
        if name not in BUTTONS:
            logging.debug(f"{self.label} ignoring unknown button {name!r}")
            return
        # an explicit event wins over a pending tap release
        self.cancel_timer(self._click_releases.pop(name, None))
        self._set_button(name, pressed)

    def _set_button(self, name: str, pressed: bool) -> None:
        if pressed:
            if name in self.pressed_buttons:
                return
            self.pressed_buttons.add(name)
        else:
            self.pressed_buttons.discard(name)
        if self._device_call(f"{name} {'press' if pressed else 'release'}", self._write_button, name, pressed):
            logging.debug(f"{self.label}: {name} {'pressed' if pressed else 'released'}")

    def on_stick_delta(self, dx: float, dy: float, sensitivity: Optional[float] = None,
                       deadzone: Optional[float] = None) -> None:
        if not self.attached:
            return
        sensitivity = self.sensitivity if sensitivity is None else sensitivity
        deadzone = self.deadzone if deadzone is None else deadzone
        self._apply_stick_delta(float(dx), float(dy), sensitivity, deadzone)

    def on_click(self, button: str) -> None:
        if not self.attached:
            return
        name = CLICK_BUTTONS.get(button)
        if name is None:
            logging.debug(f"{self.label} ignoring click on {button!r}")
            return
        self._pulse(name)

    def _pulse(self, name: str) -> None:
        self.cancel_timer(self._click_releases.pop(name, None))
        self._set_button(name, True)
        self._click_releases[name] = self.call_later(self.click_release, self._release_click, name)

    def _release_click(self, name: str) -> None:
        self._click_releases.pop(name, None)
        self._set_button(name, False)

    def on_vibration_request(self, intensity: Optional[float] = None, duration: Optional[float] = None) -> dict:
        intensity = DEFAULT_VIBRATION_INTENSITY if intensity is None else _finite(float(intensity))
        duration = VIBRATION_MIN_MS if duration is None else _finite(float(duration))
        intensity = _clamp(intensity, 0.0, 1.0)
        duration = int(_clamp(duration, VIBRATION_MIN_MS, VIBRATION_MAX_MS))
        if self.attached and self._vibration is not None:
            self._vibration.schedule(self, intensity, duration)
        return {"duration": duration, "intensity": intensity}

    def set_motors(self, left: int, right: int) -> None:
        if not self.attached:
            return
        left = int(_clamp(left, 0, ANALOG_MAX))
        right = int(_clamp(right, 0, ANALOG_MAX))
        self.motors = {"left": left, "right": right}
        self._device_call("motors", self._write_motors, left, right)

    def reset(self) -> None:
        """Release everything and zero every axis, continuing past failed releases."""
        self.cancel_timers()
        if self.attached:
            for name in sorted(self.pressed_buttons):
                self._device_call(f"{name} release", self._write_button, name, False)
        self.pressed_buttons.clear()
        self.sticks = {"left": (0, 0), "right": (0, 0)}
        self.triggers = {"left": 0, "right": 0}
        self.motors = {"left": 0, "right": 0}
        if self.attached:
            self._device_call("neutral reset", self._write_neutral)

    def teardown(self) -> None:
        if not self.attached:
            return
        self.reset()
        self.attached = False
        self._device_call("detach", self._detach)
        logging.debug(f"{self.label} detached")

    def _device_call(self, what: str, func, *args) -> bool:
        try:
            func(*args)
            return True
        except DeviceCallFailure as e:
            logging.warning(f"{self.label} {what} failed: {e}")
        except Exception as e:
            logging.exception(e)
            logging.error(f"{self.label} {what} failed unexpectedly")
        return False

    # device specific

    def _apply_stick_delta(self, dx: float, dy: float, sensitivity: float, deadzone: float) -> None:
        raise NotImplementedError

    def _write_button(self, name: str, pressed: bool) -> None:
        raise NotImplementedError

    def _write_motors(self, left: int, right: int) -> None:
        raise NotImplementedError

    def _write_neutral(self) -> None:
        raise NotImplementedError

    def _detach(self) -> None:
        raise NotImplementedError


class GamepadController(ControllerStateMachine):
    """Drives one exclusively owned virtual Xbox 360 target."""

    def __init__(self, label, loop, settings, adapter, handle, vibration=None):
        super(GamepadController, self).__init__(label, loop, settings, vibration)
        self._adapter = adapter
        self._handle = handle

    def _apply_stick_delta(self, dx, dy, sensitivity, deadzone):
        x, y = stick_transform(dx, dy, sensitivity, deadzone)
        self.sticks["right"] = (x, y)
        self._device_call("right stick", self._write_stick, x, y)

    def _write_stick(self, x: int, y: int) -> None:
        self._adapter.set_axis(self._handle, Axis.RIGHT_STICK_X, x)
        self._adapter.set_axis(self._handle, Axis.RIGHT_STICK_Y, y)
        self._adapter.commit(self._handle)

    def _write_button(self, name, pressed):
        self._adapter.set_button(self._handle, self._adapter.button_codes[name], pressed)
        self._adapter.commit(self._handle)

    def _write_motors(self, left, right):
        self._adapter.set_axis(self._handle, Axis.LEFT_MOTOR, left)
        self._adapter.set_axis(self._handle, Axis.RIGHT_MOTOR, right)
        self._adapter.commit(self._handle)

    def _write_neutral(self):
        for axis in Axis:
            self._adapter.set_axis(self._handle, axis, 0)
        self._adapter.commit(self._handle)

    def _detach(self):
        self._adapter.disconnect(self._handle)


class KeyboardMouseController(ControllerStateMachine):
    """
    Logical view of the shared keyboard and mouse for one session.

    Releases on teardown cover this session's own held buttons only; another
    session holding the same key keeps the OS seeing it until it lets go too.
    """

    def __init__(self, label, loop, settings, adapter, vibration=None):
        super(KeyboardMouseController, self).__init__(label, loop, settings, vibration)
        self._adapter = adapter
        self.pointer_speed = float(settings["pointer_speed"])

    def _apply_stick_delta(self, dx, dy, sensitivity, deadzone):
        scale = sensitivity * self.pointer_speed
        step_x = _finite(dx * scale)
        step_y = _finite(dy * scale)
        if math.isinf(step_x) or math.isinf(step_y):
            logging.debug(f"{self.label} ignoring unbounded pointer delta")
            return
        step_x, step_y = round(step_x), round(step_y)
        if step_x == 0 and step_y == 0:
            return
        self._device_call("pointer move", self._adapter.move_relative, step_x, step_y)

    def on_click(self, button):
        if not self.attached:
            return
        if button not in CLICK_BUTTONS:
            logging.debug(f"{self.label} ignoring click on {button!r}")
            return
        self._device_call(f"{button} click", self._adapter.click, button)

    def _write_button(self, name, pressed):
        self._adapter.key_event(self._adapter.key_codes[name], pressed)

    def _write_motors(self, left, right):
        # no force feedback on a keyboard, the client still gets its echo
        pass

    def _write_neutral(self):
        pass

    def _detach(self):
        pass
