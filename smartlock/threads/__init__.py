"""Threads module for background workers."""

from .alerts import Alert, AlertNotifier, create_alert_notifier_from_config
from .remote import Command, RemoteCommandChannel, parse_command, create_remote_channel_from_config
from .admin import AdminServerThread

__all__ = [
    "Alert",
    "AlertNotifier",
    "create_alert_notifier_from_config",
    "Command",
    "RemoteCommandChannel",
    "parse_command",
    "create_remote_channel_from_config",
    "AdminServerThread",
]
