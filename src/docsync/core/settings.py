"""Settings Management Module.

Handles loading, saving, and accessing the application configuration:
destination profiles, the active profile, and auto-sync options.
Persists to the "config" document of the state backend.
"""

import logging
import os
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import LastProfileError, ProfileNotFound
from .state_persistence import StateBackend

logger = logging.getLogger(__name__)

# Constants
CONFIG_KEY = "config"
CURRENT_SCHEMA_VERSION = 3
DEFAULT_DIFY_BASE_URL = "https://api.dify.ai/v1"
DEFAULT_SYNC_INTERVAL = 5
DEFAULT_PROFILE_ID = "default"


class Profile(BaseModel):
    """A destination knowledge base."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str
    api_key: str = ""
    dataset_id: str = ""
    base_url: str = DEFAULT_DIFY_BASE_URL

    @property
    def masked_api_key(self) -> str:
        if not self.api_key:
            return ""
        return f"{self.api_key[:4]}...{self.api_key[-4:]}" if len(self.api_key) > 8 else "****"


class ProfileUpdate(BaseModel):
    """Partial update for a profile. Unset fields are left unchanged."""
    name: Optional[str] = None
    api_key: Optional[str] = None
    dataset_id: Optional[str] = None
    base_url: Optional[str] = None


class AppConfig(BaseModel):
    """Global Application Settings."""
    schema_version: int = CURRENT_SCHEMA_VERSION
    profiles: List[Profile] = Field(default_factory=list)
    active_profile_id: str = ""

    # Auto-sync
    auto_sync: bool = False
    sync_interval_minutes: int = Field(default=DEFAULT_SYNC_INTERVAL, ge=1)

    # Enrichment (falls back to GOOGLE_API_KEY)
    gemini_api_key: Optional[str] = None

    model_config = ConfigDict(validate_assignment=True)

    def get_profile(self, profile_id: str) -> Profile:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        raise ProfileNotFound(profile_id)

    @property
    def active_profile(self) -> Profile:
        return self.get_profile(self.active_profile_id)


def default_profile() -> Profile:
    return Profile(id=DEFAULT_PROFILE_ID, name="Default Knowledge Base")


def default_config() -> AppConfig:
    profile = default_profile()
    return AppConfig(profiles=[profile], active_profile_id=profile.id)


class SettingsManager:
    """Manages loading and saving of settings.

    The profile list is never empty once loaded, and the active profile id
    always names an existing profile.
    """

    def __init__(self, backend: StateBackend):
        self._backend = backend
        self._settings: Optional[AppConfig] = None
        self._load()

    def _load(self):
        """Load settings from the backend or create defaults."""
        data = self._backend.read(CONFIG_KEY)
        if data is None:
            self._settings = default_config()
            self.save()
            return
        try:
            self._settings = AppConfig.model_validate(data)
        except ValidationError as e:
            logger.error(f"Error loading settings: {e}. Using defaults.")
            self._settings = default_config()
        self._ensure_invariants()

    def _ensure_invariants(self) -> None:
        if not self._settings.profiles:
            self._settings.profiles = [default_profile()]
        ids = {p.id for p in self._settings.profiles}
        if self._settings.active_profile_id not in ids:
            self._settings.active_profile_id = self._settings.profiles[0].id

    def get(self) -> AppConfig:
        """Get current settings."""
        if not self._settings:
            self._load()
        return self._settings

    def save(self, new_settings: AppConfig = None):
        """Persist settings."""
        if new_settings:
            self._settings = new_settings
            self._ensure_invariants()
        self._backend.write(CONFIG_KEY, self._settings.model_dump(mode="json"))

    @property
    def gemini_api_key(self) -> Optional[str]:
        return self.get().gemini_api_key or os.getenv("GOOGLE_API_KEY")

    # --- Profiles ---

    def add_profile(self, profile: Profile) -> Profile:
        settings = self.get()
        if any(p.id == profile.id for p in settings.profiles):
            raise ValueError(f"Profile id already exists: {profile.id}")
        settings.profiles = [*settings.profiles, profile]
        self.save()
        logger.info(f"Added profile {profile.name} ({profile.id})")
        return profile

    def update_profile(self, profile_id: str, update: ProfileUpdate) -> Profile:
        settings = self.get()
        current = settings.get_profile(profile_id)
        changes = update.model_dump(exclude_none=True)
        updated = current.model_copy(update=changes)
        settings.profiles = [updated if p.id == profile_id else p for p in settings.profiles]
        self.save()
        return updated

    def delete_profile(self, profile_id: str) -> None:
        settings = self.get()
        settings.get_profile(profile_id)
        if len(settings.profiles) == 1:
            raise LastProfileError()
        settings.profiles = [p for p in settings.profiles if p.id != profile_id]
        if settings.active_profile_id == profile_id:
            settings.active_profile_id = settings.profiles[0].id
        self.save()
        logger.info(f"Deleted profile {profile_id}")

    def set_active_profile(self, profile_id: str) -> Profile:
        settings = self.get()
        profile = settings.get_profile(profile_id)
        settings.active_profile_id = profile_id
        self.save()
        return profile

    def update_sync_options(
        self,
        auto_sync: Optional[bool] = None,
        sync_interval_minutes: Optional[int] = None,
    ) -> AppConfig:
        settings = self.get()
        if auto_sync is not None:
            settings.auto_sync = auto_sync
        if sync_interval_minutes is not None:
            settings.sync_interval_minutes = sync_interval_minutes
        self.save()
        return settings
