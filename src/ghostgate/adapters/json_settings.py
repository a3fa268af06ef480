"""JSON file settings backend.

Policy settings live in their own small JSON file so they can be edited by
hand as easily as config.json, while still being written atomically.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Optional

from ghostgate.core.config import PolicySettings
from ghostgate.core.errors import PolicyUnavailableError


class JsonSettingsBackend:
    """Settings backend that satisfies the SettingsBackendPort contract."""

    def __init__(self, path: str) -> None:
        self._path = path

    async def read(self) -> Optional[PolicySettings]:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, settings: PolicySettings) -> None:
        await asyncio.to_thread(self._write_sync, settings)

    def _read_sync(self) -> Optional[PolicySettings]:
        if not os.path.exists(self._path):
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError) as exc:
            raise PolicyUnavailableError(f"Cannot read policy file {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise PolicyUnavailableError(f"Policy file {self._path} must hold a JSON object")
        try:
            return PolicySettings.from_dict(raw)
        except (TypeError, ValueError) as exc:
            raise PolicyUnavailableError(f"Invalid policy value in {self._path}: {exc}") from exc

    def _write_sync(self, settings: PolicySettings) -> None:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Write to a sibling file and swap it in so readers never see a
        # half-written document.
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(settings.to_dict(), handle, indent=2, sort_keys=True)
            handle.write("\n")
        os.replace(tmp_path, self._path)
