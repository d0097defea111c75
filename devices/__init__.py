from devices.base import Axis, DeviceAdapter, DeviceCallFailure, DeviceInitFailure
from devices.gamepad import GamepadAdapter, GamepadHandle
from devices.keyboard_mouse import KeyboardMouseAdapter
