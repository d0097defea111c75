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

from devices.base import DeviceAdapter, DeviceCallFailure, DeviceInitFailure

MOUSE_PREFIX = "mouse:"

DEFAULT_KEY_CODES = {
    "dpad-up": "up",
    "dpad-down": "down",
    "dpad-left": "left",
    "dpad-right": "right",
    "action-jump": "space",
    "action-run": "shift",
    "action-interact": "e",
    "action-crouch": "ctrl",
    "left-click": "mouse:left",
    "right-click": "mouse:right",
    "menu": "esc",
    "back": "tab",
}


class KeyboardMouseAdapter(DeviceAdapter):
    """
    The host's one keyboard and one mouse.

    There is no per-client identity here: every session writes to the same
    focus target, and ``held`` is a single process-wide set of keys and mouse
    buttons. Sessions are not isolated from each other in this mode.
    """
    multi_identity = False

    def __init__(self, key_codes: dict[str, str]):
        self.key_codes = dict(key_codes)
        self._keyboard = None
        self._mouse = None
        self._keys = None
        self._buttons = None
        self.held: set = set()

    def initialize(self) -> None:
        try:
            from pynput import keyboard, mouse
        except Exception as e:  # pynput picks a backend on import and fails without a display
            logging.exception(e)
            raise DeviceInitFailure("pynput could not open keyboard/mouse backend") from e

        for name, code in self.key_codes.items():
            try:
                self._resolve(code, keyboard, mouse)
            except (KeyError, ValueError) as e:
                raise DeviceInitFailure(f"Unknown key code {code!r} for {name!r}") from e
        try:
            self._keyboard = keyboard.Controller()
            self._mouse = mouse.Controller()
        except Exception as e:
            raise DeviceInitFailure("Could not create keyboard/mouse controller") from e
        self._keys = keyboard
        self._buttons = mouse
        logging.info("Keyboard and mouse backend ready")

    @staticmethod
    def _resolve(code: str, keyboard, mouse):
        if code.startswith(MOUSE_PREFIX):
            return mouse.Button[code[len(MOUSE_PREFIX):]]
        if len(code) == 1:
            return keyboard.KeyCode.from_char(code)
        return keyboard.Key[code]

    def key_event(self, code: str, down: bool) -> None:
        if code.startswith(MOUSE_PREFIX):
            return self.mouse_button(code[len(MOUSE_PREFIX):], down)
        key = self._resolve(code, self._require(self._keys), self._buttons)
        try:
            if down:
                self._keyboard.press(key)
                self.held.add(key)
            else:
                self._keyboard.release(key)
                self.held.discard(key)
        except Exception as e:
            raise DeviceCallFailure(f"key {code} {'down' if down else 'up'} failed: {e}") from e

    def mouse_button(self, button: str, down: bool) -> None:
        target = self._require(self._buttons).Button[button]
        try:
            if down:
                self._mouse.press(target)
                self.held.add(target)
            else:
                self._mouse.release(target)
                self.held.discard(target)
        except Exception as e:
            raise DeviceCallFailure(f"mouse {button} {'down' if down else 'up'} failed: {e}") from e

    def move_relative(self, dx: int, dy: int) -> None:
        self._require(self._mouse)
        try:
            self._mouse.move(dx, dy)
        except Exception as e:
            raise DeviceCallFailure(f"pointer move ({dx}, {dy}) failed: {e}") from e

    def click(self, button: str) -> None:
        target = self._require(self._buttons).Button[button]
        try:
            self._mouse.click(target)
        except Exception as e:
            raise DeviceCallFailure(f"mouse {button} click failed: {e}") from e

    def release_all(self) -> None:
        for target in list(self.held):
            try:
                if isinstance(target, self._buttons.Button):
                    self._mouse.release(target)
                else:
                    self._keyboard.release(target)
            except Exception as e:
                logging.warning(f"Could not release {target}: {e}")
            self.held.discard(target)

    def shutdown(self) -> None:
        if self._keyboard is not None:
            self.release_all()
        self._keyboard = None
        self._mouse = None
        self._keys = None
        self._buttons = None

    @staticmethod
    def _require(backend):
        if backend is None:
            raise DeviceCallFailure("Keyboard/mouse backend is not initialized")
        return backend
