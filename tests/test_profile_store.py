"""Tests for ProfileStore and profile validation."""

from datetime import datetime, timedelta

import pytest

from errors import InvalidPersonalityProfile
from memory.profile_store import ProfileStore, validate_profile
from schemas.personality import PersonalityProfile, Tone


class TestProfileStore:
    """Test latest-wins profile storage."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = ProfileStore(default_language="en")
        self.now = datetime(2026, 1, 1, 12, 0, 0)

    def test_unknown_tenant_gets_default(self):
        """Test system default for tenants without a profile."""
        profile, is_default = self.store.snapshot("new-shop")
        assert is_default is True
        assert profile.tenant_id == "new-shop"
        assert profile.tone == Tone.FRIENDLY
        assert profile.language == "en"

    def test_latest_updated_at_wins(self):
        """Test that an older profile cannot replace a newer one."""
        newer = PersonalityProfile(tenant_id="shop", tone=Tone.CARING, updated_at=self.now)
        older = PersonalityProfile(tenant_id="shop", tone=Tone.TRENDY, updated_at=self.now - timedelta(hours=1))
        assert self.store.put(newer) is True
        assert self.store.put(older) is False
        assert self.store.get("shop").tone == Tone.CARING

    def test_invalid_payload_keeps_last_known_good(self):
        """Test fallback to the previous profile on a bad update."""
        self.store.put(PersonalityProfile(tenant_id="shop", tone=Tone.EXPERT, updated_at=self.now))
        assert self.store.put_raw({"tenant_id": "shop", "tone": "sarcastic"}) is False
        assert self.store.get("shop").tone == Tone.EXPERT
        assert self.store.rejected("shop") is True

    def test_valid_update_clears_rejection(self):
        """Test that a good profile clears the rejected flag."""
        self.store.put_raw({"tenant_id": "shop", "tone": "sarcastic"})
        assert self.store.put_raw({"tenant_id": "shop", "tone": "caring"}) is True
        assert self.store.rejected("shop") is False

    def test_snapshot_is_stable_across_updates(self):
        """Test that a snapshot taken before an update is unaffected by it."""
        self.store.put(PersonalityProfile(tenant_id="shop", tone=Tone.PROFESSIONAL, updated_at=self.now))
        snapshot, _ = self.store.snapshot("shop")
        self.store.put(PersonalityProfile(tenant_id="shop", tone=Tone.TRENDY, updated_at=self.now + timedelta(minutes=1)))
        assert snapshot.tone == Tone.PROFESSIONAL
        assert self.store.get("shop").tone == Tone.TRENDY


class TestValidateProfile:
    """Test raw payload validation."""

    def test_missing_tenant_rejected(self):
        """Test that tenant_id is required."""
        with pytest.raises(InvalidPersonalityProfile):
            validate_profile({"tone": "friendly"})

    def test_defaults_filled(self):
        """Test that optional fields take defaults."""
        profile = validate_profile({"tenant_id": "shop", "tone": "expert"})
        assert profile.tone == Tone.EXPERT
        assert profile.custom_instructions == ""
