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

from devices.base import ANALOG_MAX


class VibrationScheduler:
    """
    Timed rumble with guaranteed auto-stop.

    The stop timer belongs to the controller, so tearing the controller down
    cancels it; if it fires anyway it finds the controller detached and does
    nothing.
    """

    def schedule(self, controller, intensity: float, duration_ms: int) -> None:
        # a newer request replaces the older one, including its stop time
        controller.cancel_timer(controller.vibration_stop)
        level = round(intensity * ANALOG_MAX)
        controller.set_motors(level, level)
        controller.vibration_stop = controller.call_later(duration_ms / 1000, self._stop, controller)
        logging.debug(f"{controller.label} vibrating at {level} for {duration_ms}ms")

    @staticmethod
    def _stop(controller) -> None:
        controller.vibration_stop = None
        if not controller.attached:
            return
        controller.set_motors(0, 0)
        logging.debug(f"{controller.label} vibration stopped")
