"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def _seconds(value: Any) -> int:
    if not isinstance(value, str):
        return -1
    try:
        return parse_duration(value)
    except DurationParseError:
        return -1


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    queue = config_dict.get("queue") or {}
    if isinstance(queue, dict):
        if queue.get("retries") == 0:
            warning_messages.append(
                "queue.retries is 0: every transient delivery error goes straight to the dead-letter list"
            )

        flow = queue.get("flow_control") or {}
        if isinstance(flow, dict) and isinstance(flow.get("rate"), int) and flow["rate"] > 10:
            warning_messages.append(
                f"queue.flow_control.rate ({flow['rate']}) is above typical email provider limits"
            )

        api_url = queue.get("api_url")
        if isinstance(api_url, str) and api_url.startswith("http://"):
            warning_messages.append("queue.api_url uses plain http; the queue token is sent in the clear")

    polling = config_dict.get("polling") or {}
    if isinstance(polling, dict):
        active = _seconds(polling.get("active_interval"))
        if 0 < active < 2:
            warning_messages.append(
                f"Short polling.active_interval ({polling['active_interval']}) multiplies status query load"
            )

    maintenance = config_dict.get("maintenance") or {}
    if isinstance(maintenance, dict):
        grace = _seconds(maintenance.get("orphan_grace"))
        if 0 < grace < 300:
            warning_messages.append(
                f"Short maintenance.orphan_grace ({maintenance['orphan_grace']}) may re-publish "
                "jobs whose scheduling request is still in flight"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
