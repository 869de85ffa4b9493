"""Recovery profile loading and validation for YAML-based btrecover profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from btrecover.core.errors import ProfileLoadError, ProfileValidationError
from btrecover.core.model import MatchSpec, PreferenceRule, RecoveryProfile, RecoverySettings

DEFAULT_PROFILE_ID = "generic_bluetooth"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, RecoveryProfile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("btrecover.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    roaming = Path(os.environ.get("APPDATA", Path.home() / "AppData/Roaming"))
    local = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData/Local"))
    return roaming / "btrecover/profiles", local / "btrecover/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any]) -> RecoverySettings:
    defaults = RecoverySettings()
    recovery = doc.get("recovery", {})
    return RecoverySettings(
        max_attempts=int(recovery.get("max_attempts", defaults.max_attempts)),
        retry_delay_s=float(recovery.get("retry_delay_s", defaults.retry_delay_s)),
        state_timeout_s=float(recovery.get("state_timeout_s", defaults.state_timeout_s)),
        poll_interval_s=float(recovery.get("poll_interval_s", defaults.poll_interval_s)),
    )


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> RecoveryProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    match = doc["match"]
    if not any(match.get(key) for key in ("exact_name", "fuzzy_pattern")):
        raise ProfileValidationError(
            f"Profile '{doc['id']}' in {source} needs match.exact_name or match.fuzzy_pattern"
        )
    if match.get("fuzzy") is False and not match.get("exact_name"):
        raise ProfileValidationError(
            f"Profile '{doc['id']}' in {source} disables fuzzy matching but has no match.exact_name"
        )

    rules = tuple(
        PreferenceRule(name_contains=rule["name_contains"], priority=int(rule["priority"]))
        for rule in match.get("prefer", [])
    )
    service = doc.get("service") or {}

    return RecoveryProfile(
        id=doc["id"],
        name=doc["name"],
        match=MatchSpec(
            exact_name=match.get("exact_name"),
            fuzzy_pattern=match.get("fuzzy_pattern"),
            device_class=match.get("class"),
            fuzzy=bool(match.get("fuzzy", True)),
            preference_rules=rules,
        ),
        service_name=service.get("name"),
        settings=_build_settings(doc),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("btrecover.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, RecoveryProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
