"""Latest-wins store of tenant personality profiles."""

import logging
import threading
from typing import Optional, Any, Tuple

from pydantic import ValidationError

from errors import InvalidPersonalityProfile
from schemas.personality import PersonalityProfile, default_profile

logger = logging.getLogger(__name__)


def validate_profile(data: dict[str, Any]) -> PersonalityProfile:
    """
    Build a profile from a raw mapping, e.g. a configuration API payload.

    Raises:
        InvalidPersonalityProfile: If required fields are missing or values are unknown
    """
    try:
        return PersonalityProfile.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidPersonalityProfile(data.get("tenant_id"), f"bad fields: {fields}") from e


class ProfileStore:
    """
    Holds one profile per tenant; the newest ``updated_at`` wins.

    Profiles are frozen, so ``snapshot`` hands out the stored object itself:
    a concurrent update swaps the reference but can never change a snapshot
    already taken by an in-flight request.
    """

    def __init__(self, default_language: str = "en"):
        self.default_language = default_language
        self._profiles: dict[str, PersonalityProfile] = {}
        self._rejected: set[str] = set()  # Tenants whose latest payload failed validation
        self._lock = threading.Lock()

    def put(self, profile: PersonalityProfile) -> bool:
        """
        Store a profile unless a newer one is already present.

        Returns:
            True if the profile became the tenant's current one
        """
        with self._lock:
            current = self._profiles.get(profile.tenant_id)
            if current is not None and current.updated_at > profile.updated_at:
                logger.info(
                    f"Ignoring stale profile for tenant {profile.tenant_id} "
                    f"({profile.version} older than {current.version})"
                )
                return False
            self._profiles[profile.tenant_id] = profile
            self._rejected.discard(profile.tenant_id)
        logger.info(f"Personality profile updated for tenant {profile.tenant_id} (version {profile.version})")
        return True

    def put_raw(self, data: dict[str, Any]) -> bool:
        """
        Validate and store a raw profile payload.

        An invalid payload is logged as a configuration warning and the
        last-known-good profile stays in place.

        Returns:
            True if the payload was valid and stored
        """
        try:
            profile = validate_profile(data)
        except InvalidPersonalityProfile as e:
            logger.warning(f"Configuration warning: {e}; keeping last-known-good profile")
            if e.tenant_id:
                with self._lock:
                    self._rejected.add(e.tenant_id)
            return False
        return self.put(profile)

    def rejected(self, tenant_id: str) -> bool:
        """Whether the tenant's most recent payload was invalid."""
        with self._lock:
            return tenant_id in self._rejected

    def get(self, tenant_id: str) -> Optional[PersonalityProfile]:
        """Get the tenant's current profile, if any."""
        with self._lock:
            return self._profiles.get(tenant_id)

    def snapshot(self, tenant_id: str) -> Tuple[PersonalityProfile, bool]:
        """
        Get one consistent profile for a request.

        Returns:
            (profile, is_default) where is_default means the system default was used
        """
        profile = self.get(tenant_id)
        if profile is None:
            return default_profile(tenant_id, self.default_language), True
        return profile, False
