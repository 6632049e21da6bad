"""
Building and editing leaderboard submissions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from relay.catalog import format_flag
from relay.errors import ValidationError

FORM_PREFIX = "contact"

# Placeholders until video analysis exists.
ANALYSIS_DEFAULTS = {
    "time_to_rim_s": "0.25",
    "time_to_setdown_s": "0.25",
    "splash_pct": "0.0",
    "foam_pct": "0.0",
}

OPTIONAL_FIELDS = ("handle_url", "location", "leaderboard_name")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a `Z` suffix."""
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def read_form_field(form: Mapping[str, Any], name: str) -> Optional[str]:
    value = form.get(f"{FORM_PREFIX}[{name}]")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_submission_fields(
    form: Mapping[str, Any], now: Callable[[], datetime] = utc_now
) -> Dict[str, str]:
    """
    Validate a storefront form post and produce the metaobject fields.

    New submissions are always unverified.

    Raises:
        ValidationError: If a required field is missing.
    """
    handle_text = read_form_field(form, "handle_text")
    container = read_form_field(form, "container")
    leaderboard_type = read_form_field(form, "leaderboard_type")
    video_url = read_form_field(form, "video_url")
    video_upload_url = read_form_field(form, "video_upload_url")
    time_s = read_form_field(form, "time_s")
    volume_oz = read_form_field(form, "volume_oz")

    if not handle_text or not container or not leaderboard_type:
        raise ValidationError("handle_text, container, and leaderboard_type required")
    if not video_url and not video_upload_url:
        raise ValidationError("Either video_url or video_upload_url required")
    if not time_s:
        raise ValidationError("time_s is required")
    if not volume_oz:
        raise ValidationError("volume_oz is required")

    fields = {
        "handle_text": handle_text,
        "leaderboard_type": leaderboard_type,
        "beer_style": read_form_field(form, "beer_style") or "",
        "container": container,
        "video_url": video_upload_url or video_url,
        "time_s": time_s,
        "volume_oz": volume_oz,
        **ANALYSIS_DEFAULTS,
        "date_iso": format_timestamp(now()),
        "verified": format_flag(False),
    }
    for name in OPTIONAL_FIELDS:
        value = read_form_field(form, name)
        if value:
            fields[name] = value
    return fields


def admin_edit_fields(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Field values an admin edit may write.

    The verification flag is dropped; it only changes through verify.

    Raises:
        ValidationError: If any field value is null.
    """
    fields = {key: value for key, value in updates.items() if key != "verified"}
    null_keys = sorted(key for key, value in fields.items() if value is None)
    if null_keys:
        raise ValidationError(
            f"Field values must not be null: {', '.join(null_keys)}",
            details={"fields": null_keys},
        )
    return fields


def verification_fields() -> Dict[str, str]:
    return {"verified": format_flag(True)}
