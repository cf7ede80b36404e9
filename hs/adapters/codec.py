"""
Storage documents and wire payloads <-> typed models.

Nothing outside this module knows what a stored row looks like.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.errors import ValidationError
from ..core.models import (
    BlastRadius, CanonicalReport, Category, Comment, Contribution, Location,
    OriginKind, SubReport,
)
from ..domain.taxonomy import CategoryTaxonomy
from ..utils.time import now_utc, parse_iso, to_iso

# ---------- storage documents ----------

def _location_doc(loc: Location) -> Dict[str, float]:
    return {"lat": float(loc.lat), "lon": float(loc.lon)}

def _location_from(d: Dict[str, Any]) -> Location:
    return Location(float(d["lat"]), float(d["lon"]))

def contribution_to_doc(c: Contribution) -> Dict[str, Any]:
    return {
        "sub_report_id": c.sub_report_id,
        "reporter_id": c.reporter_id,
        "submitted_at": to_iso(c.submitted_at),
        "leaf": c.leaf,
        "location": _location_doc(c.location),
        "accuracy_m": int(c.accuracy_m),
    }

def contribution_from_doc(d: Dict[str, Any]) -> Contribution:
    return Contribution(
        sub_report_id=str(d["sub_report_id"]),
        reporter_id=str(d["reporter_id"]),
        submitted_at=parse_iso(d["submitted_at"]),
        leaf=str(d.get("leaf") or ""),
        location=_location_from(d["location"]),
        accuracy_m=int(d.get("accuracy_m") or 0),
    )

def report_to_doc(r: CanonicalReport) -> Dict[str, Any]:
    return {
        "id": r.id,
        "partition_key": r.partition_key,
        "location": _location_doc(r.location),
        "category": {"major": r.category.major, "sub": r.category.sub, "leaf": r.category.leaf},
        "description": r.description,
        "created_at": to_iso(r.created_at),
        "last_updated_at": to_iso(r.last_updated_at),
        "accuracy_m": int(r.accuracy_m),
        "radius_m": int(r.radius_m),
        "merged_count": int(r.merged_count),
        "contributor_ids": sorted(r.contributor_ids),
        "upvote_count": int(r.upvote_count),
        "history": [contribution_to_doc(c) for c in r.history],
        "media": list(r.media),
        "noise_level": r.noise_level,
        "merged_into": r.merged_into,
        "folded_ids": list(r.folded_ids),
        "withdrawn": bool(r.withdrawn),
    }

def report_from_doc(d: Dict[str, Any], token: Optional[str] = None) -> CanonicalReport:
    cat = d.get("category") or {}
    return CanonicalReport(
        id=str(d["id"]),
        partition_key=str(d["partition_key"]),
        location=_location_from(d["location"]),
        category=Category(str(cat.get("major") or ""), str(cat.get("sub") or ""), str(cat.get("leaf") or "")),
        description=str(d.get("description") or ""),
        created_at=parse_iso(d["created_at"]),
        last_updated_at=parse_iso(d.get("last_updated_at") or d["created_at"]),
        accuracy_m=int(d.get("accuracy_m") or 0),
        radius_m=int(d.get("radius_m") or 0),
        merged_count=int(d.get("merged_count", 1)),
        contributor_ids=set(d.get("contributor_ids") or []),
        upvote_count=int(d.get("upvote_count") or 0),
        history=[contribution_from_doc(h) for h in (d.get("history") or [])],
        media=list(d.get("media") or []),
        noise_level=d.get("noise_level"),
        merged_into=d.get("merged_into"),
        folded_ids=list(d.get("folded_ids") or []),
        withdrawn=bool(d.get("withdrawn")),
        concurrency_token=token,
    )

def comment_to_doc(c: Comment) -> Dict[str, Any]:
    return {
        "comment_id": c.comment_id,
        "report_id": c.report_id,
        "author_id": c.author_id,
        "text": c.text,
        "created_at": to_iso(c.created_at),
        "origin": c.origin.value,
        "source_sub_report_id": c.source_sub_report_id,
    }

def comment_from_doc(d: Dict[str, Any]) -> Comment:
    return Comment(
        comment_id=str(d["comment_id"]),
        report_id=str(d["report_id"]),
        author_id=str(d["author_id"]),
        text=str(d.get("text") or ""),
        created_at=parse_iso(d["created_at"]),
        origin=OriginKind(d.get("origin") or OriginKind.USER_AUTHORED.value),
        source_sub_report_id=d.get("source_sub_report_id"),
    )

def upvote_doc(report_id: str, user_id: str, counted: bool, created_at: datetime) -> Dict[str, Any]:
    return {
        "report_id": report_id,
        "user_id": user_id,
        "counted": bool(counted),
        "created_at": to_iso(created_at),
    }

# ---------- wire (presentation) ----------

def report_to_wire(r: CanonicalReport) -> Dict[str, Any]:
    return {
        "id": r.id,
        "latitude": r.location.lat,
        "longitude": r.location.lon,
        "category": r.category.leaf,
        "sub_category": r.category.sub,
        "major_category": r.category.major,
        "description": r.description,
        "created_at": to_iso(r.created_at),
        "last_updated_at": to_iso(r.last_updated_at),
        "blast_radius_m": int(r.radius_m),
        "merged_count": int(r.merged_count),
        "contributor_count": len(r.contributor_ids),
        "upvotes": int(r.upvote_count),
        "media_files": list(r.media),
        "noise_level": r.noise_level,
    }

def comment_to_wire(c: Comment) -> Dict[str, Any]:
    return {
        "id": c.comment_id,
        "report_id": c.report_id,
        "author": c.author_id,
        "text": c.text,
        "timestamp": to_iso(c.created_at),
        "origin": c.origin.value,
    }

def _num(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None

def sub_report_from_wire(payload: Dict[str, Any], user_id: str, taxonomy: CategoryTaxonomy,
                         now: Optional[datetime] = None) -> SubReport:
    """
    Build a SubReport from a submission payload.

    Accepted keys: latitude/longitude (or lat/lon), category (leaf name) or
    categories (first entry wins), description, blast_radius, media_files,
    noise_level, submitted_at (ISO 8601, defaults to now).
    Raises ValidationError for anything that cannot be turned into a model;
    semantic checks live in domain.validate.
    """
    if not isinstance(payload, dict):
        raise ValidationError("invalid_payload")

    lat = _num(payload.get("latitude", payload.get("lat")))
    lon = _num(payload.get("longitude", payload.get("lon")))
    if lat is None or lon is None:
        raise ValidationError("missing_coordinates")

    leaf = payload.get("category")
    if not leaf:
        cats = payload.get("categories") or []
        leaf = cats[0] if isinstance(cats, list) and cats else None
    if not leaf:
        raise ValidationError("missing_category")
    category = taxonomy.resolve(str(leaf))
    if category is None:
        raise ValidationError("unknown_category")

    raw_radius = str(payload.get("blast_radius") or BlastRadius.SMALL.value).strip().lower()
    try:
        blast = BlastRadius(raw_radius)
    except ValueError:
        raise ValidationError("invalid_blast_radius")

    submitted_at = now or now_utc()
    if payload.get("submitted_at"):
        try:
            submitted_at = parse_iso(payload["submitted_at"])
        except (TypeError, ValueError):
            raise ValidationError("invalid_timestamp")

    noise = payload.get("noise_level")
    if noise is not None:
        try:
            noise = int(noise)
        except (TypeError, ValueError):
            raise ValidationError("invalid_noise_level")

    media = payload.get("media_files") or []
    if not isinstance(media, list):
        raise ValidationError("invalid_media_files")

    return SubReport(
        location=Location(lat, lon),
        category=category,
        description=str(payload.get("description") or ""),
        reporter_id=str(user_id or ""),
        submitted_at=submitted_at,
        blast_radius=blast,
        media=[str(m) for m in media],
        noise_level=noise,
    )
