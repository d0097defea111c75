"""Pytest configuration and shared fixtures."""

import dataclasses
import enum
import json
import sys
import types

import pytest


class XUSB_BUTTON(enum.IntFlag):
    XUSB_GAMEPAD_DPAD_UP = 0x0001
    XUSB_GAMEPAD_DPAD_DOWN = 0x0002
    XUSB_GAMEPAD_DPAD_LEFT = 0x0004
    XUSB_GAMEPAD_DPAD_RIGHT = 0x0008
    XUSB_GAMEPAD_START = 0x0010
    XUSB_GAMEPAD_BACK = 0x0020
    XUSB_GAMEPAD_LEFT_THUMB = 0x0040
    XUSB_GAMEPAD_RIGHT_THUMB = 0x0080
    XUSB_GAMEPAD_LEFT_SHOULDER = 0x0100
    XUSB_GAMEPAD_RIGHT_SHOULDER = 0x0200
    XUSB_GAMEPAD_GUIDE = 0x0400
    XUSB_GAMEPAD_A = 0x1000
    XUSB_GAMEPAD_B = 0x2000
    XUSB_GAMEPAD_X = 0x4000
    XUSB_GAMEPAD_Y = 0x8000


class FakeVX360Gamepad:
    """Stand-in for vgamepad.VX360Gamepad; ``report`` is what the host last saw."""

    def __init__(self):
        self.buttons = set()
        self.left = (0, 0)
        self.right = (0, 0)
        self.triggers = [0, 0]
        self.updates = 0
        self.report = None
        self.fail = set()

    def _check(self, name):
        if name in self.fail:
            raise OSError(f"{name} failed")

    def press_button(self, button):
        self._check("press_button")
        self.buttons.add(button)

    def release_button(self, button):
        self._check("release_button")
        self.buttons.discard(button)

    def left_joystick(self, x_value, y_value):
        self.left = (x_value, y_value)

    def right_joystick(self, x_value, y_value):
        self._check("right_joystick")
        self.right = (x_value, y_value)

    def left_trigger(self, value):
        self.triggers[0] = value

    def right_trigger(self, value):
        self.triggers[1] = value

    def update(self):
        self._check("update")
        self.updates += 1
        self.report = {
            "buttons": frozenset(self.buttons),
            "left": self.left,
            "right": self.right,
            "triggers": tuple(self.triggers),
        }

    def reset(self):
        self.buttons.clear()
        self.left = (0, 0)
        self.right = (0, 0)
        self.triggers = [0, 0]

    @property
    def neutral(self):
        return self.report == {"buttons": frozenset(), "left": (0, 0), "right": (0, 0), "triggers": (0, 0)}


@pytest.fixture
def fake_vgamepad(monkeypatch):
    """Install a fake vgamepad module; created pads are collected in ``.pads``."""
    module = types.ModuleType("vgamepad")
    module.XUSB_BUTTON = XUSB_BUTTON
    module.pads = []
    module.refuse = False

    def factory():
        if module.refuse:
            raise OSError("ViGEmBus not reachable")
        pad = FakeVX360Gamepad()
        module.pads.append(pad)
        return pad

    module.VX360Gamepad = factory
    monkeypatch.setitem(sys.modules, "vgamepad", module)
    return module


class Key(enum.Enum):
    up = "up"
    down = "down"
    left = "left"
    right = "right"
    space = "space"
    shift = "shift"
    ctrl = "ctrl"
    esc = "esc"
    tab = "tab"
    enter = "enter"


@dataclasses.dataclass(frozen=True)
class KeyCode:
    char: str

    @classmethod
    def from_char(cls, char):
        return cls(char)


class Button(enum.Enum):
    left = 1
    middle = 2
    right = 3


class FakeKeyboardController:

    def __init__(self):
        self.events = []
        self.held = set()

    def press(self, key):
        self.events.append(("press", key))
        self.held.add(key)

    def release(self, key):
        self.events.append(("release", key))
        self.held.discard(key)


class FakeMouseController:

    def __init__(self):
        self.events = []
        self.held = set()

    def press(self, button):
        self.events.append(("press", button))
        self.held.add(button)

    def release(self, button):
        self.events.append(("release", button))
        self.held.discard(button)

    def move(self, dx, dy):
        self.events.append(("move", dx, dy))

    def click(self, button, count=1):
        self.events.append(("click", button))


@pytest.fixture
def fake_pynput(monkeypatch):
    """Install fake pynput.keyboard / pynput.mouse modules recording every call."""
    package = types.ModuleType("pynput")
    keyboard = types.ModuleType("pynput.keyboard")
    mouse = types.ModuleType("pynput.mouse")

    keyboard.Key = Key
    keyboard.KeyCode = KeyCode
    keyboard.controllers = []
    mouse.Button = Button
    mouse.controllers = []

    def keyboard_factory():
        controller = FakeKeyboardController()
        keyboard.controllers.append(controller)
        return controller

    def mouse_factory():
        controller = FakeMouseController()
        mouse.controllers.append(controller)
        return controller

    keyboard.Controller = keyboard_factory
    mouse.Controller = mouse_factory
    package.keyboard = keyboard
    package.mouse = mouse

    monkeypatch.setitem(sys.modules, "pynput", package)
    monkeypatch.setitem(sys.modules, "pynput.keyboard", keyboard)
    monkeypatch.setitem(sys.modules, "pynput.mouse", mouse)
    return package


class FakeTimer:

    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Deterministic stand-in for the event loop's timer API."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [timer for timer in self.timers if not timer.cancelled and timer.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        self.now = target

    @property
    def pending(self):
        return [timer for timer in self.timers if not timer.cancelled]


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def settings():
    return {
        "mode": "gamepad",
        "max_sessions": 4,
        "stick_sensitivity": 0.8,
        "stick_deadzone": 0.1,
        "pointer_speed": 1.0,
        "debounce_ms": 50,
        "click_release_ms": 100,
    }


@pytest.fixture
def gamepad_adapter(fake_vgamepad):
    from devices.gamepad import DEFAULT_BUTTON_CODES, GamepadAdapter

    adapter = GamepadAdapter(DEFAULT_BUTTON_CODES)
    adapter.initialize()
    return adapter


@pytest.fixture
def keyboard_mouse_adapter(fake_pynput):
    from devices.keyboard_mouse import DEFAULT_KEY_CODES, KeyboardMouseAdapter

    adapter = KeyboardMouseAdapter(DEFAULT_KEY_CODES)
    adapter.initialize()
    return adapter


class FakeConnection:
    """Websocket stand-in collecting whatever the server sends."""

    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        self.closed = True

    def events(self, name):
        return [packet["data"] for packet in self.sent if packet["event"] == name]
