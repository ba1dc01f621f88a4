"""
MPRIS D-Bus binding for the control surface.

Method calls are dispatched from the default GLib main context, which the
event loop iterates once per tick, so they run on the loop's thread.
"""
from typing import Any, Dict, List, Optional

import gi

gi.require_version("Gio", "2.0")
from gi.repository import Gio, GLib

from logging_config import get_logger, ControlSurfaceError
from src.control import ControlService, ControlSurface

logger = get_logger('mpris')

BUS_NAME = "org.mpris.MediaPlayer2.fmus"
OBJECT_PATH = "/org/mpris/MediaPlayer2"
ROOT_INTERFACE = "org.mpris.MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"

MPRIS_INTERFACE_XML = """
<node>
  <interface name='org.mpris.MediaPlayer2'>
    <method name='Raise'/>
    <method name='Quit'/>
    <property name='CanQuit' type='b' access='read'/>
    <property name='CanRaise' type='b' access='read'/>
    <property name='HasTrackList' type='b' access='read'/>
    <property name='Identity' type='s' access='read'/>
    <property name='DesktopEntry' type='s' access='read'/>
  </interface>
  <interface name='org.mpris.MediaPlayer2.Player'>
    <method name='Next'/>
    <method name='Previous'/>
    <method name='Pause'/>
    <method name='PlayPause'/>
    <method name='Play'/>
    <property name='PlaybackStatus' type='s' access='read'/>
    <property name='Metadata' type='a{sv}' access='read'/>
    <property name='Position' type='x' access='read'/>
    <property name='CanGoNext' type='b' access='read'/>
    <property name='CanGoPrevious' type='b' access='read'/>
    <property name='CanPlay' type='b' access='read'/>
    <property name='CanPause' type='b' access='read'/>
    <property name='CanSeek' type='b' access='read'/>
    <property name='CanControl' type='b' access='read'/>
  </interface>
</node>
"""

PROPERTY_TYPES: Dict[str, str] = {
    "CanQuit": "b",
    "CanRaise": "b",
    "HasTrackList": "b",
    "Identity": "s",
    "DesktopEntry": "s",
    "PlaybackStatus": "s",
    "Position": "x",
    "CanGoNext": "b",
    "CanGoPrevious": "b",
    "CanPlay": "b",
    "CanPause": "b",
    "CanSeek": "b",
    "CanControl": "b",
}


def to_variant(name: str, value: Any) -> GLib.Variant:
    """Wrap a property value in the variant type MPRIS expects."""
    if name == "Metadata":
        return GLib.Variant("a{sv}", {k: GLib.Variant("s", v) for k, v in value.items()})
    return GLib.Variant(PROPERTY_TYPES[name], value)


class MprisService(ControlService):
    """Publishes a ControlSurface as org.mpris.MediaPlayer2.fmus."""

    def __init__(self, surface: ControlSurface,
                 context: Optional[GLib.MainContext] = None) -> None:
        self.surface = surface
        self.context = context or GLib.MainContext.default()
        self.registration_ids: List[int] = []
        self.owner_id: Optional[int] = None
        self.node_info = Gio.DBusNodeInfo.new_for_xml(MPRIS_INTERFACE_XML)

        try:
            self.connection = Gio.bus_get_sync(Gio.BusType.SESSION, None)
        except GLib.Error as e:
            raise ControlSurfaceError(f"Could not connect to D-Bus session bus: {e.message}") from e

        try:
            for interface in self.node_info.interfaces:
                reg_id = self.connection.register_object_with_closures2(
                    OBJECT_PATH,
                    interface,
                    self._handle_method_call,
                    self._handle_get_property,
                    self._handle_set_property,
                )
                self.registration_ids.append(reg_id)
        except GLib.Error as e:
            self.close()
            raise ControlSurfaceError(f"Could not register MPRIS object: {e.message}") from e

        self.owner_id = Gio.bus_own_name_on_connection(
            self.connection,
            BUS_NAME,
            Gio.BusNameOwnerFlags.NONE,
            None,
            None,
        )
        surface.add_publisher(self._emit_properties_changed)
        logger.info(f"MPRIS service registered as {BUS_NAME}")

    def process_pending(self) -> bool:
        return self.context.iteration(False)

    def close(self) -> None:
        if self.owner_id is not None:
            Gio.bus_unown_name(self.owner_id)
            self.owner_id = None
        for reg_id in self.registration_ids:
            self.connection.unregister_object(reg_id)
        self.registration_ids = []
        logger.info("MPRIS service closed")

    def _emit_properties_changed(self, changed: Dict[str, Any]) -> None:
        properties = {name: to_variant(name, value) for name, value in changed.items()}
        try:
            self.connection.emit_signal(
                None,
                OBJECT_PATH,
                "org.freedesktop.DBus.Properties",
                "PropertiesChanged",
                GLib.Variant("(sa{sv}as)", (PLAYER_INTERFACE, properties, [])),
            )
        except GLib.Error as e:
            logger.warning(f"PropertiesChanged emission failed: {e.message}")

    def _handle_method_call(self, connection, sender, object_path, interface_name,
                            method_name, parameters, invocation):
        if interface_name == PLAYER_INTERFACE:
            self.surface.dispatch(method_name)
        else:
            logger.debug(f"Ignoring {interface_name}.{method_name}")
        invocation.return_value(None)

    def _handle_get_property(self, connection, sender, object_path, interface_name,
                             property_name):
        if interface_name == ROOT_INTERFACE:
            props = self.surface.root_properties()
        elif interface_name == PLAYER_INTERFACE:
            props = self.surface.player_properties()
        else:
            return None
        if property_name not in props:
            return None
        return to_variant(property_name, props[property_name])

    def _handle_set_property(self, connection, sender, object_path, interface_name,
                             property_name, value):
        return False
