from __future__ import annotations

import os
from pathlib import Path

import pytest

from btrecover.core.errors import ProfileValidationError
from btrecover.core.model import PreferenceRule
from btrecover.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles


def _write_profile(name: str, content: str) -> None:
    path = Path(os.environ["APPDATA"]) / "btrecover" / "profiles" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_load_packaged_profiles() -> None:
    loaded = load_profiles()
    assert DEFAULT_PROFILE_ID in loaded.profiles
    assert "tp_link_usb" in loaded.profiles
    assert loaded.warnings == ()

    profile = loaded.profiles["generic_bluetooth"]
    assert profile.match.device_class == "Bluetooth"
    assert profile.match.fuzzy_pattern == "Bluetooth"
    assert profile.match.preference_rules[0] == PreferenceRule(name_contains="Realtek", priority=30)
    assert profile.service_name == "bthserv"
    assert profile.settings.max_attempts == 5
    assert profile.settings.poll_interval_s == 0.25


def test_user_profile_overrides_packaged() -> None:
    _write_profile(
        "override.yaml",
        """
id: generic_bluetooth
name: My adapter
match:
  exact_name: "Intel(R) Wireless Bluetooth(R)"
recovery:
  max_attempts: 3
  state_timeout_s: 20
""",
    )

    loaded = load_profiles()
    profile = loaded.profiles["generic_bluetooth"]
    assert profile.name == "My adapter"
    assert profile.match.exact_name == "Intel(R) Wireless Bluetooth(R)"
    assert profile.service_name is None
    assert profile.settings.max_attempts == 3
    assert profile.settings.state_timeout_s == 20.0
    assert profile.settings.retry_delay_s == 2.0
    assert any("overrides" in warning for warning in loaded.warnings)


def test_local_appdata_profiles_are_loaded() -> None:
    path = Path(os.environ["LOCALAPPDATA"]) / "btrecover" / "profiles" / "radio.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "id: radio\nname: Radio\nmatch:\n  exact_name: Generic Bluetooth Radio\n  fuzzy: false\n",
        encoding="utf-8",
    )

    profile = load_profiles().profiles["radio"]
    assert profile.match.fuzzy is False


def test_unknown_keys_rejected() -> None:
    _write_profile(
        "bad.yaml",
        """
id: bad
name: Bad
match:
  fuzzy_pattern: Bluetooth
  mac_prefix: ["88:92:CC"]
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_profile_without_name_or_pattern_rejected() -> None:
    _write_profile(
        "class_only.yaml",
        """
id: class_only
name: Class only
match:
  class: Bluetooth
""",
    )

    with pytest.raises(ProfileValidationError, match="exact_name or match.fuzzy_pattern"):
        load_profiles()


def test_invalid_recovery_settings_rejected() -> None:
    _write_profile(
        "zero.yaml",
        """
id: zero
name: Zero
match:
  fuzzy_pattern: Bluetooth
recovery:
  max_attempts: 0
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_duplicate_yaml_keys_rejected() -> None:
    _write_profile(
        "dup.yaml",
        """
id: dup
name: Duplicate
match:
  fuzzy_pattern: Bluetooth
  fuzzy_pattern: Radio
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_non_mapping_document_rejected() -> None:
    _write_profile("list.yaml", "- just\n- a list\n")

    with pytest.raises(ProfileValidationError):
        load_profiles()


def test_fuzzy_disabled_without_exact_name_rejected() -> None:
    _write_profile(
        "pattern_only.yaml",
        """
id: pattern_only
name: Pattern only
match:
  fuzzy_pattern: Bluetooth
  fuzzy: false
""",
    )

    with pytest.raises(ProfileValidationError, match="disables fuzzy matching"):
        load_profiles()


def test_packaged_generic_profile_demotes_enumerators() -> None:
    rules = load_profiles().profiles["generic_bluetooth"].match.preference_rules
    assert PreferenceRule(name_contains="Enumerator", priority=-10) in rules
