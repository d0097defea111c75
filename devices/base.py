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

import enum
from abc import ABC, abstractmethod

STICK_MIN = -32768
STICK_MAX = 32767
ANALOG_MAX = 255


class DeviceInitFailure(Exception): pass


class DeviceCallFailure(Exception): pass


class Axis(enum.Enum):
    LEFT_STICK_X = "left_stick_x"
    LEFT_STICK_Y = "left_stick_y"
    RIGHT_STICK_X = "right_stick_x"
    RIGHT_STICK_Y = "right_stick_y"
    LEFT_TRIGGER = "left_trigger"
    RIGHT_TRIGGER = "right_trigger"
    LEFT_MOTOR = "left_motor"
    RIGHT_MOTOR = "right_motor"


STICK_AXES = (Axis.LEFT_STICK_X, Axis.LEFT_STICK_Y, Axis.RIGHT_STICK_X, Axis.RIGHT_STICK_Y)


class DeviceAdapter(ABC):
    """
    Boundary to the OS facility that injects synthetic input.

    One adapter exists per process, picked by the configured mode.
    ``initialize`` must succeed before any session is admitted.
    """

    # whether every session gets its own device identity (and therefore a slot)
    multi_identity: bool = False

    @abstractmethod
    def initialize(self) -> None:
        """Raise DeviceInitFailure when no device can be provided."""

    @abstractmethod
    def shutdown(self) -> None:
        ...
