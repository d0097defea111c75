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
import os
import sys

from config import MODE_GAMEPAD, MODE_KEYBOARD_MOUSE, Config, ConfigurationLoadError
from devices.base import DeviceAdapter, DeviceInitFailure
from devices.gamepad import GamepadAdapter
from devices.keyboard_mouse import KeyboardMouseAdapter
from logger import setup_logging
from server_data import ServerData
from session_manager import SessionManager
from websocket_server import WebsocketServer


def create_adapter(config) -> DeviceAdapter:
    mode = config["controller"]["mode"]
    if mode == MODE_GAMEPAD:
        return GamepadAdapter(config["buttons"]["gamepad"])
    if mode == MODE_KEYBOARD_MOUSE:
        return KeyboardMouseAdapter(config["buttons"]["keyboard"])
    raise ValueError(f"Unknown device mode {mode!r}")


class PhonePad:

    def __init__(self, config, loop: asyncio.AbstractEventLoop, adapter: DeviceAdapter):
        self._config = config
        self._loop = loop
        self._adapter = adapter
        self._data = ServerData()
        self._manager = SessionManager(self._config, self._loop, self._adapter)
        self._websocket_server = WebsocketServer(self._config, self._data, self._manager)

    async def begin(self):
        logging.info("Starting PhonePad Server")
        try:
            logging.info("Starting PhonePad Websocket Server")
            async with self._websocket_server:
                try:
                    logging.info(f"Listening on port {self._websocket_server.port}, "
                                 f"mode {self._config['controller']['mode']}, "
                                 f"{self._manager.max_sessions or 'unlimited'} sessions")
                    logging.info("Ctrl^C to quit")
                    while True:
                        await asyncio.sleep(1)
                except asyncio.CancelledError:
                    logging.info("Cancelled ...")
                except KeyboardInterrupt:
                    logging.info("Cancelled ...")
                finally:
                    logging.info("Stopping Server ...")
                    self._data.shutdown_event.set()
                    self._manager.shutdown()
        finally:
            self._adapter.shutdown()
            logging.info("Server shut down gracefully")


async def main() -> int:
    logging.info("Starting phonepad ...")

    config = Config(os.environ.get("PHONEPAD_CONFIG", "./config.toml"))
    loop = asyncio.get_running_loop()

    try:
        await config.initialize()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return 1

    adapter = create_adapter(config.config)
    try:
        adapter.initialize()
    except DeviceInitFailure as e:
        logging.error(f"Failed to initialize the virtual input device: {e}. Server cannot start.")
        return 1

    phonepad = PhonePad(config.config, loop, adapter)
    await phonepad.begin()
    return 0


def run():
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
