"""Named measurement profiles stored in a JSON file."""

import json
import time
import uuid
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .measurement import Measurement

logger = logging.getLogger(__name__)


class ProfileSaveError(IOError):
    """Raised when saving profiles fails."""


class ProfileLoadError(IOError):
    """Raised when reading the profile file fails due to I/O errors."""


@dataclass(frozen=True)
class ProfileMeta:
    id: str
    name: str
    updated_at: int  # epoch milliseconds


@dataclass(frozen=True)
class SavedProfile:
    id: str
    name: str
    updated_at: int
    data: Measurement

    @property
    def meta(self) -> ProfileMeta:
        return ProfileMeta(self.id, self.name, self.updated_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "updatedAt": self.updated_at,
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SavedProfile":
        if not isinstance(data.get("data"), dict):
            raise TypeError("profile 'data' must be an object")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            updated_at=int(data.get("updatedAt", 0)),
            data=Measurement.from_dict(data["data"]),
        )


def _name_key(name: str) -> str:
    return name.strip().casefold()


class ProfileStore:
    """
    Saved measurement profiles, newest first.

    The whole store is one JSON document that is read on every call and
    rewritten on every change.

    Schema Version History:
        1 - id, name, updatedAt, data
    """

    CURRENT_VERSION = "1"

    def __init__(self, path, clock: Callable[[], float] = time.time) -> None:
        """
        Args:
            path: JSON file holding the profiles (created on first save)
            clock: Seconds since the epoch, replaceable in tests
        """
        self.path = Path(path).expanduser()
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _read_all(self) -> list:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable profile file {self.path}: {e}")
            return []
        except OSError as e:
            raise ProfileLoadError(f"Failed to load profiles: {e}") from e

        entries = raw.get("profiles") if isinstance(raw, dict) else raw
        if not isinstance(entries, list):
            logger.warning(f"Ignoring profile file {self.path}: no profile list")
            return []

        profiles = []
        for i, entry in enumerate(entries):
            try:
                profiles.append(SavedProfile.from_dict(entry))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping invalid profile at index {i}: {e}")
        return profiles

    def _write_all(self, profiles: list) -> None:
        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "version": self.CURRENT_VERSION,
                "profiles": [p.to_dict() for p in profiles],
            }
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_path.replace(self.path)
        except (OSError, TypeError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ProfileSaveError(f"Failed to save profiles: {e}") from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def save(self, name: str, measurement: Measurement) -> SavedProfile:
        """
        Save a measurement under ``name``.

        A profile with the same name (ignoring case and surrounding spaces)
        is overwritten and keeps its id; otherwise the new profile goes first.
        """
        clean_name = name.strip()
        if not clean_name:
            raise ValueError("Profile name must not be empty")

        profiles = self._read_all()
        existing = next((i for i, p in enumerate(profiles)
                         if _name_key(p.name) == _name_key(clean_name)), None)
        profile = SavedProfile(
            id=profiles[existing].id if existing is not None else uuid.uuid4().hex[:12],
            name=clean_name,
            updated_at=self._now_ms(),
            data=measurement.normalized(),
        )
        if existing is not None:
            profiles[existing] = profile
        else:
            profiles.insert(0, profile)

        self._write_all(profiles)
        logger.info(f"Saved profile '{clean_name}' ({profile.id})")
        return profile

    def list(self) -> list:
        """Profile metadata, most recently updated first."""
        metas = [p.meta for p in self._read_all()]
        return sorted(metas, key=lambda m: m.updated_at, reverse=True)

    def load(self, profile_id: str) -> Optional[SavedProfile]:
        return next((p for p in self._read_all() if p.id == profile_id), None)

    def find(self, key: str) -> Optional[SavedProfile]:
        """Look a profile up by id, then by name (case-insensitive)."""
        profiles = self._read_all()
        for p in profiles:
            if p.id == key:
                return p
        return next((p for p in profiles if _name_key(p.name) == _name_key(key)), None)

    def delete(self, profile_id: str) -> bool:
        profiles = self._read_all()
        remaining = [p for p in profiles if p.id != profile_id]
        if len(remaining) == len(profiles):
            return False
        self._write_all(remaining)
        logger.info(f"Deleted profile {profile_id}")
        return True

    def rename(self, profile_id: str, new_name: str) -> bool:
        clean_name = new_name.strip()
        if not clean_name:
            raise ValueError("Profile name must not be empty")

        profiles = self._read_all()
        for i, p in enumerate(profiles):
            if p.id == profile_id:
                profiles[i] = SavedProfile(p.id, clean_name, self._now_ms(), p.data)
                self._write_all(profiles)
                logger.info(f"Renamed profile {profile_id} to '{clean_name}'")
                return True
        return False

    def search(self, query: str = ""):
        """Metadata of profiles whose name contains ``query`` (case-insensitive)."""
        needle = query.strip().casefold()
        metas = self.list()
        if not needle:
            return metas
        return [m for m in metas if needle in m.name.casefold()]
