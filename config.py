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
from pathlib import Path

import aiofiles
import tomlkit
import tomlkit.exceptions
import voluptuous.error
from voluptuous import All, Any, Coerce, In, Length, Optional, Range, Schema

from controller_state import BUTTONS
from devices.gamepad import DEFAULT_BUTTON_CODES
from devices.keyboard_mouse import DEFAULT_KEY_CODES

MODE_GAMEPAD = "gamepad"
MODE_KEYBOARD_MOUSE = "keyboard_mouse"


class ConfigurationLoadError(Exception): pass


def _code_table(defaults: dict) -> Schema:
    # only vocabulary names may be remapped; anything left out keeps its default
    return Schema(All(
        {Optional(name): All(str, Length(min=1)) for name in BUTTONS},
        lambda table: {**defaults, **table},
    ))


class Config:
    config: dict
    config_opened: bool = False

    def __init__(self, config_location: Path):
        self.config_location = config_location

        self.config_schema = Schema({
            Optional('server', default={}): {
                Optional('host', default=""): str,
                Optional('port', default=3000): All(int, Range(min=0, max=65535)),
            },
            Optional('controller', default={}): {
                Optional('mode', default=MODE_GAMEPAD): In((MODE_GAMEPAD, MODE_KEYBOARD_MOUSE)),
                Optional('max_sessions', default=4): All(int, Range(min=1, max=16)),
                Optional('stick_sensitivity', default=0.8): All(Coerce(float), Range(min=0, min_included=False)),
                Optional('stick_deadzone', default=0.1): All(Coerce(float), Range(min=0, max=1)),
                Optional('pointer_speed', default=1.0): All(Coerce(float), Range(min=0, min_included=False)),
                Optional('debounce_ms', default=50): All(Any(int, float), Range(min=0)),
                Optional('click_release_ms', default=100): All(Any(int, float), Range(min=1, max=1000)),
            },
            Optional('buttons', default={}): {
                Optional('gamepad', default={}): _code_table(DEFAULT_BUTTON_CODES),
                Optional('keyboard', default={}): _code_table(DEFAULT_KEY_CODES),
            },
        })

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                document = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                logging.debug("Validating against Schema.")
                self.config = self.config_schema(document.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from .example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        logging.info(f"Configuration loaded.")
