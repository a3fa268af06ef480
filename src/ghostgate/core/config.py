"""Policy settings dataclass.

Persistence lives in adapters, but this dataclass defines the single shape
every core component reads its decisions from.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

DEFAULT_SCHEDULED_SEND_DELAY_SECONDS = 12

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def parse_flag(name: str, value: Any) -> bool:
    """Read a toggle from JSON or text; anything ambiguous is rejected."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise ValueError(f"{name} expects true/false, got {value!r}")


@dataclass(frozen=True)
class PolicySettings:
    """Flat set of privacy toggles for one account.

    ``ghost_mode_enabled`` is the master switch: every ``prevent_*`` flag
    and ``use_scheduled_send`` is inert while it is off.
    """

    ghost_mode_enabled: bool = False
    prevent_read_receipts: bool = True
    prevent_online_status: bool = True
    prevent_typing_status: bool = True
    prevent_voice_playback: bool = True
    prevent_video_playback: bool = True
    save_deleted_messages: bool = False
    save_edited_messages: bool = False
    use_scheduled_send: bool = False
    scheduled_send_delay_seconds: int = DEFAULT_SCHEDULED_SEND_DELAY_SECONDS
    allow_forward_from_private: bool = False
    allow_save_from_private: bool = False
    intercept_self_destructing: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PolicySettings":
        """Build settings from a stored mapping.

        Unknown keys are ignored and missing keys keep their defaults, so a
        file written by an older or newer version still loads.
        """

        values: dict[str, Any] = {}
        for field in fields(cls):
            if field.name not in raw:
                continue
            value = raw[field.name]
            if field.name == "scheduled_send_delay_seconds":
                values[field.name] = max(0, int(value))
            else:
                values[field.name] = parse_flag(field.name, value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def with_changes(self, **changes: Any) -> "PolicySettings":
        return replace(self, **changes)
