"""Target device selection among enumerated PnP devices."""

from __future__ import annotations

import re
from collections.abc import Sequence

from btrecover.core.model import Device, DeviceHint, DeviceStatus, MatchSpec

_VID_PID_RE = re.compile(r"^(.*?VID_[0-9A-F]{4}&PID_[0-9A-F]{4})", re.IGNORECASE)

_STATUS_RANK = {
    DeviceStatus.OK: 0,
    DeviceStatus.DISABLED: 1,
    DeviceStatus.ERROR: 2,
    DeviceStatus.UNKNOWN: 3,
    DeviceStatus.OTHER: 4,
}


def instance_prefix(instance_id: str) -> str:
    """Return the part of an instance id that survives renumbering.

    ``USB\\VID_0BDA&PID_8771\\00E04C000001`` -> ``USB\\VID_0BDA&PID_8771``.
    Ids without a vendor/product pair drop their last path segment.
    """
    match = _VID_PID_RE.match(instance_id)
    if match:
        return match.group(1).upper()
    head, sep, _ = instance_id.rpartition("\\")
    return (head if sep else instance_id).upper()


def status_rank(device: Device) -> int:
    return _STATUS_RANK[device.state]


def preference_score(device: Device, spec: MatchSpec) -> int:
    lower_name = device.friendly_name.lower()
    scores = [
        rule.priority
        for rule in spec.preference_rules
        if rule.name_contains.lower() in lower_name
    ]
    return max(scores, default=0)


def _pick(candidates: Sequence[Device], spec: MatchSpec) -> Device | None:
    best: Device | None = None
    best_score: int | None = None
    for device in candidates:
        # Status is not ranked; first seen breaks ties.
        score = preference_score(device, spec)
        if best_score is None or score > best_score:
            best = device
            best_score = score
    return best


def _in_class(device: Device, device_class: str | None) -> bool:
    if not device_class:
        return True
    return device.device_class.lower() == device_class.lower()


def _match_by_hint(devices: Sequence[Device], spec: MatchSpec, hint: DeviceHint) -> Device | None:
    if hint.instance_id:
        wanted = hint.instance_id.upper()
        for device in devices:
            if device.instance_id.upper() == wanted:
                return device

    prefix = hint.instance_prefix or (instance_prefix(hint.instance_id) if hint.instance_id else None)
    if prefix:
        prefixed = [
            d
            for d in devices
            if _in_class(d, spec.device_class) and d.instance_id.upper().startswith(prefix.upper())
        ]
        if prefixed:
            return min(prefixed, key=status_rank)
    return None


def _match_by_name(devices: Sequence[Device], spec: MatchSpec) -> Device | None:
    if spec.exact_name:
        exact = [d for d in devices if d.friendly_name == spec.exact_name]
        if exact:
            return _pick(exact, spec)

    # With fuzzy matching off only the exact friendly name counts.
    if not spec.fuzzy or not spec.fuzzy_pattern:
        return None
    pattern = spec.fuzzy_pattern.lower()

    in_class = [
        d
        for d in devices
        if _in_class(d, spec.device_class) and pattern in d.friendly_name.lower()
    ]
    if in_class:
        return _pick(in_class, spec)

    anywhere = [d for d in devices if pattern in d.friendly_name.lower()]
    return _pick(anywhere, spec)


def find_device(
    devices: Sequence[Device],
    spec: MatchSpec,
    hint: DeviceHint | None = None,
) -> Device | None:
    """Select the single best candidate, or ``None`` when nothing matches."""
    if hint is not None:
        hinted = _match_by_hint(devices, spec, hint)
        if hinted is not None:
            return hinted
    return _match_by_name(devices, spec)


def hint_for(device: Device) -> DeviceHint:
    return DeviceHint(
        instance_id=device.instance_id,
        instance_prefix=instance_prefix(device.instance_id),
    )
