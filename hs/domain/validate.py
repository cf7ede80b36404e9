from typing import Optional

from ..core.constants import MAX_DESCRIPTION_LEN, MAX_COMMENT_LEN, MAX_MEDIA_FILES
from ..core.errors import ValidationError
from ..core.models import SubReport
from .geo import valid_coordinates
from .taxonomy import CategoryTaxonomy

def validate_sub_report(sub: SubReport, taxonomy: CategoryTaxonomy) -> Optional[str]:
    """
    Returns None if valid, or a reason string if the submission must be rejected.
    """
    if sub.location is None or not valid_coordinates(sub.location.lat, sub.location.lon):
        return "missing_coordinates"
    # (0, 0) is what an unfilled form sends
    if sub.location.lat == 0 and sub.location.lon == 0:
        return "missing_coordinates"

    if sub.category is None or not sub.category.leaf:
        return "missing_category"
    if not taxonomy.is_consistent(sub.category):
        return "unknown_category"

    desc = (sub.description or "").strip()
    if not desc:
        return "missing_description"
    if len(desc) > MAX_DESCRIPTION_LEN:
        return "description_too_long"

    if not str(sub.reporter_id or "").strip():
        return "missing_reporter"

    if sub.submitted_at is None:
        return "missing_timestamp"

    if sub.noise_level is not None and not (1 <= int(sub.noise_level) <= 10):
        return "invalid_noise_level"

    if len(sub.media or []) > MAX_MEDIA_FILES:
        return "too_many_media_files"

    return None

def require_valid(sub: SubReport, taxonomy: CategoryTaxonomy) -> None:
    reason = validate_sub_report(sub, taxonomy)
    if reason:
        raise ValidationError(reason)

def validate_comment_text(text: Optional[str]) -> str:
    """Returns the stripped text or raises ValidationError."""
    t = (text or "").strip()
    if not t:
        raise ValidationError("missing_comment_text")
    if len(t) > MAX_COMMENT_LEN:
        raise ValidationError("comment_too_long")
    return t

def validate_user_id(user_id: Optional[str]) -> str:
    u = str(user_id or "").strip()
    if not u:
        raise ValidationError("missing_user")
    return u
