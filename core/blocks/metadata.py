"""Block palette descriptor for the extension host.

Produces plain dicts only; the host decides how to render them. The
descriptor is rebuilt on every call so a locale change shows up on the
next query.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.flight.commands import COMMAND_SPECS, CommandSpec, FlipDirection, ParameterKind
from core.i18n.locale import MessageTable, default_messages, resolve_locale

EXTENSION_ID = "tello"
EXTENSION_NAME = "Tello"
SEPARATOR = "---"
FLIP_MENU = "tiltDirection"

BLOCK_COMMAND = "command"
BLOCK_REPORTER = "reporter"

ARGUMENT_NUMBER = "number"
ARGUMENT_STRING = "string"


@dataclass(frozen=True)
class ReporterSpec:
    """A reporter block and the telemetry field it returns."""

    opcode: str
    field: str


REPORTER_SPECS: tuple[ReporterSpec, ...] = (
    ReporterSpec("pitch", "pitch"),
    ReporterSpec("roll", "roll"),
    ReporterSpec("yaw", "yaw"),
    ReporterSpec("vgx", "vgx"),
    ReporterSpec("vgy", "vgy"),
    ReporterSpec("vgz", "vgz"),
    ReporterSpec("tof", "tof"),
    ReporterSpec("height", "h"),
    ReporterSpec("bat", "bat"),
    ReporterSpec("baro", "baro"),
    ReporterSpec("time", "time"),
    ReporterSpec("agx", "agx"),
    ReporterSpec("agy", "agy"),
    ReporterSpec("agz", "agz"),
)

# takeoff/land/emergency, then the parameterised moves
_COMMAND_GROUPS = (COMMAND_SPECS[:3], COMMAND_SPECS[3:])


def _arguments(spec: CommandSpec) -> dict:
    if spec.parameter_kind is ParameterKind.DIRECTION:
        return {
            spec.argument: {
                "type": ARGUMENT_STRING,
                "menu": FLIP_MENU,
                "defaultValue": spec.default_value,
            }
        }
    return {
        spec.argument: {
            "type": ARGUMENT_NUMBER,
            "defaultValue": spec.default_value,
        }
    }


def command_block(spec: CommandSpec, locale: str, messages: MessageTable) -> dict:
    block = {
        "opcode": spec.opcode,
        "text": messages.text(spec.opcode, locale),
        "blockType": BLOCK_COMMAND,
    }
    if spec.takes_parameter:
        block["arguments"] = _arguments(spec)
    return block


def reporter_block(spec: ReporterSpec, locale: str, messages: MessageTable) -> dict:
    return {
        "opcode": spec.opcode,
        "text": messages.text(spec.opcode, locale),
        "blockType": BLOCK_REPORTER,
    }


def flip_menu_items(locale: str, messages: Optional[MessageTable] = None) -> list[dict]:
    messages = messages or default_messages()
    return [
        {"text": messages.text(direction.message_key, locale), "value": direction.value}
        for direction in FlipDirection
    ]


def build_extension_info(
    locale: Optional[str] = None,
    menu_icon_uri: Optional[str] = None,
    block_icon_uri: Optional[str] = None,
    messages: Optional[MessageTable] = None,
) -> dict:
    """Describe every block, argument and menu for the host.

    Args:
        locale: The host's configured locale; unsupported values fall
            back to English.
        menu_icon_uri: Opaque image reference for the category menu.
        block_icon_uri: Opaque image reference shown on each block.
    """
    locale = resolve_locale(locale)
    messages = messages or default_messages()

    blocks: list = []
    for group in _COMMAND_GROUPS:
        blocks.extend(command_block(spec, locale, messages) for spec in group)
        blocks.append(SEPARATOR)
    blocks.extend(reporter_block(spec, locale, messages) for spec in REPORTER_SPECS)

    return {
        "id": EXTENSION_ID,
        "name": EXTENSION_NAME,
        "menuIconURI": menu_icon_uri,
        "blockIconURI": block_icon_uri,
        "blocks": blocks,
        "menus": {
            FLIP_MENU: {
                "acceptReporters": True,
                "items": flip_menu_items(locale, messages),
            }
        },
    }
