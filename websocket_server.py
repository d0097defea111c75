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
import json
import logging
from typing import Optional

import websockets.exceptions
from websockets.asyncio.server import Server, ServerConnection, serve

from server_data import ServerData, Session
from session_manager import SessionManager


class WebsocketServer:

    def __init__(self, config, data: ServerData, manager: SessionManager):
        self._config = config
        self._data = data
        self._websocket_server = None
        self._manager = manager
        self.server: Optional[Server] = None

    @property
    def port(self) -> Optional[int]:
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def handler(self, websocket: ServerConnection):
        session = await self._manager.client_connected(websocket)
        if session is None:
            await websocket.close()
            return

        reason = "connection closed"
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        recv_task: Optional[asyncio.Task] = None
        try:
            while True:
                if recv_task is None:
                    recv_task = asyncio.create_task(websocket.recv())
                done, pending = await asyncio.wait(
                    [recv_task, shutdown_wait_task],
                    return_when=asyncio.FIRST_COMPLETED
                )

                # shutdown case
                if shutdown_wait_task in done:
                    reason = "server shutdown"
                    recv_task.cancel()
                    await websocket.close()
                    break

                message = recv_task.result()
                recv_task = None
                if isinstance(message, str):
                    await self._parse_message(session, message)
                else:
                    logging.warning(f"{session.label} sent binary data, ignoring")
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection closed")
        finally:
            shutdown_wait_task.cancel()
            if recv_task is not None and not recv_task.done():
                recv_task.cancel()
            self._manager.client_disconnected(session, reason)

    async def _parse_message(self, session: Session, message: str):
        try:
            packet = json.loads(message)
        except json.JSONDecodeError as e:
            logging.warning(f"{session.label} sent non-JSON data; details:")
            logging.exception(e)
            return
        logging.debug(f"Received message: {packet}")
        await self._manager.handle_packet(session, packet)

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._websocket_server = serve(self.handler, self._config["server"]["host"],
                                       int(self._config["server"]["port"]))
        self.server = await self._websocket_server.__aenter__()
        return self.server

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._websocket_server is not None:
            logging.debug(f"Stopping websocket server")
            return await self._websocket_server.__aexit__(exc_type, exc_val, exc_tb)
