"""
Tests for the virtual gamepad and keyboard/mouse adapters.
"""

import sys

import pytest

from conftest import XUSB_BUTTON, Button, Key, KeyCode
from devices import Axis, DeviceCallFailure, DeviceInitFailure, GamepadAdapter, KeyboardMouseAdapter
from devices.gamepad import DEFAULT_BUTTON_CODES
from devices.keyboard_mouse import DEFAULT_KEY_CODES


class TestGamepadAdapterInit:
    """Backend probing at startup."""

    def test_initialize_resolves_codes_and_probes(self, fake_vgamepad):
        adapter = GamepadAdapter(DEFAULT_BUTTON_CODES)

        adapter.initialize()

        assert adapter.button_codes["action-jump"] is XUSB_BUTTON.XUSB_GAMEPAD_A
        assert adapter.button_codes["menu"] is XUSB_BUTTON.XUSB_GAMEPAD_START
        # the probe target was created and removed again
        assert len(fake_vgamepad.pads) == 1
        assert fake_vgamepad.pads[0].neutral

    def test_missing_library(self, monkeypatch):
        """An unavailable vgamepad is an init failure, not an ImportError."""
        monkeypatch.setitem(sys.modules, "vgamepad", None)

        with pytest.raises(DeviceInitFailure):
            GamepadAdapter(DEFAULT_BUTTON_CODES).initialize()

    def test_bus_unavailable(self, fake_vgamepad):
        fake_vgamepad.refuse = True

        with pytest.raises(DeviceInitFailure):
            GamepadAdapter(DEFAULT_BUTTON_CODES).initialize()

    def test_unknown_button_code(self, fake_vgamepad):
        codes = dict(DEFAULT_BUTTON_CODES, menu="XUSB_GAMEPAD_TURBO")

        with pytest.raises(DeviceInitFailure):
            GamepadAdapter(codes).initialize()

    def test_connect_before_initialize(self):
        with pytest.raises(DeviceCallFailure):
            GamepadAdapter(DEFAULT_BUTTON_CODES).connect()


class TestGamepadAdapterWrites:
    """Per-target writes."""

    def test_each_connect_is_a_new_target(self, gamepad_adapter, fake_vgamepad):
        first = gamepad_adapter.connect()
        second = gamepad_adapter.connect()

        assert first.pad is not second.pad
        assert first.number != second.number
        assert len(fake_vgamepad.pads) == 3

    def test_axes_are_batched_until_commit(self, gamepad_adapter, fake_vgamepad):
        handle = gamepad_adapter.connect()
        pad = fake_vgamepad.pads[-1]

        gamepad_adapter.set_axis(handle, Axis.RIGHT_STICK_X, 1000)
        gamepad_adapter.set_axis(handle, Axis.RIGHT_STICK_Y, -1000)
        gamepad_adapter.set_axis(handle, Axis.LEFT_TRIGGER, 200)
        assert pad.report is None

        gamepad_adapter.commit(handle)

        assert pad.updates == 1
        assert pad.report["right"] == (1000, -1000)
        assert pad.report["triggers"] == (200, 0)

    @pytest.mark.parametrize("axis, value", [
        (Axis.LEFT_STICK_X, 32768),
        (Axis.RIGHT_STICK_Y, -32769),
        (Axis.LEFT_TRIGGER, 256),
        (Axis.RIGHT_MOTOR, -1),
    ])
    def test_out_of_range_axis(self, gamepad_adapter, axis, value):
        handle = gamepad_adapter.connect()

        with pytest.raises(DeviceCallFailure):
            gamepad_adapter.set_axis(handle, axis, value)

        assert handle.axes[axis] == 0

    def test_motor_axes_tracked_on_handle(self, gamepad_adapter):
        handle = gamepad_adapter.connect()

        gamepad_adapter.set_axis(handle, Axis.LEFT_MOTOR, 255)
        gamepad_adapter.set_axis(handle, Axis.RIGHT_MOTOR, 10)
        gamepad_adapter.commit(handle)

        assert handle.motors == (255, 10)

    def test_button_failure_is_a_call_failure(self, gamepad_adapter, fake_vgamepad):
        handle = gamepad_adapter.connect()
        fake_vgamepad.pads[-1].fail = {"press_button"}

        with pytest.raises(DeviceCallFailure):
            gamepad_adapter.set_button(handle, XUSB_BUTTON.XUSB_GAMEPAD_A, True)

    def test_disconnect_resets_and_is_idempotent(self, gamepad_adapter, fake_vgamepad):
        handle = gamepad_adapter.connect()
        pad = fake_vgamepad.pads[-1]
        gamepad_adapter.set_button(handle, XUSB_BUTTON.XUSB_GAMEPAD_B, True)
        gamepad_adapter.commit(handle)

        gamepad_adapter.disconnect(handle)
        gamepad_adapter.disconnect(handle)

        assert pad.neutral
        assert not handle.connected
        assert handle.pad is None

    def test_writes_after_disconnect_fail(self, gamepad_adapter):
        handle = gamepad_adapter.connect()
        gamepad_adapter.disconnect(handle)

        with pytest.raises(DeviceCallFailure):
            gamepad_adapter.set_button(handle, XUSB_BUTTON.XUSB_GAMEPAD_A, True)
        with pytest.raises(DeviceCallFailure):
            gamepad_adapter.commit(handle)

    def test_shutdown_removes_every_target(self, gamepad_adapter):
        handles = [gamepad_adapter.connect() for _ in range(3)]

        gamepad_adapter.shutdown()

        assert not any(handle.connected for handle in handles)
        with pytest.raises(DeviceCallFailure):
            gamepad_adapter.connect()


class TestKeyboardMouseAdapterInit:

    def test_initialize_creates_controllers(self, fake_pynput):
        adapter = KeyboardMouseAdapter(DEFAULT_KEY_CODES)

        adapter.initialize()

        assert len(fake_pynput.keyboard.controllers) == 1
        assert len(fake_pynput.mouse.controllers) == 1
        assert not adapter.multi_identity

    def test_missing_backend(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "pynput", None)

        with pytest.raises(DeviceInitFailure):
            KeyboardMouseAdapter(DEFAULT_KEY_CODES).initialize()

    @pytest.mark.parametrize("code", ["hyperspace", "mouse:side"])
    def test_unknown_key_code(self, fake_pynput, code):
        codes = dict(DEFAULT_KEY_CODES, menu=code)

        with pytest.raises(DeviceInitFailure):
            KeyboardMouseAdapter(codes).initialize()

    def test_calls_before_initialize(self):
        adapter = KeyboardMouseAdapter(DEFAULT_KEY_CODES)

        with pytest.raises(DeviceCallFailure):
            adapter.key_event("space", True)
        with pytest.raises(DeviceCallFailure):
            adapter.move_relative(1, 1)


class TestKeyboardMouseAdapterWrites:

    def test_key_codes(self, keyboard_mouse_adapter, fake_pynput):
        keyboard = fake_pynput.keyboard.controllers[-1]

        keyboard_mouse_adapter.key_event("space", True)
        keyboard_mouse_adapter.key_event("q", True)

        assert keyboard.events == [("press", Key.space), ("press", KeyCode("q"))]
        assert keyboard_mouse_adapter.held == {Key.space, KeyCode("q")}

    def test_mouse_codes_route_to_mouse(self, keyboard_mouse_adapter, fake_pynput):
        mouse = fake_pynput.mouse.controllers[-1]

        keyboard_mouse_adapter.key_event("mouse:right", True)
        keyboard_mouse_adapter.key_event("mouse:right", False)

        assert mouse.events == [("press", Button.right), ("release", Button.right)]
        assert keyboard_mouse_adapter.held == set()

    def test_move_and_click(self, keyboard_mouse_adapter, fake_pynput):
        mouse = fake_pynput.mouse.controllers[-1]

        keyboard_mouse_adapter.move_relative(3, -7)
        keyboard_mouse_adapter.click("left")

        assert mouse.events == [("move", 3, -7), ("click", Button.left)]

    def test_shutdown_releases_everything_held(self, keyboard_mouse_adapter, fake_pynput):
        keyboard = fake_pynput.keyboard.controllers[-1]
        mouse = fake_pynput.mouse.controllers[-1]
        keyboard_mouse_adapter.key_event("shift", True)
        keyboard_mouse_adapter.key_event("mouse:left", True)

        keyboard_mouse_adapter.shutdown()

        assert keyboard.held == set()
        assert mouse.held == set()
        with pytest.raises(DeviceCallFailure):
            keyboard_mouse_adapter.move_relative(1, 0)
