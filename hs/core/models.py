from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from .constants import BLAST_RADIUS_M
from ..utils.ids import new_sub_report_id

class OriginKind(str, Enum):
    USER_AUTHORED = "user_authored"
    MERGE_DERIVED = "merge_derived"

class BlastRadius(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def meters(self) -> int:
        return BLAST_RADIUS_M[self.value]

class IngestAction(str, Enum):
    CREATED = "created"
    MERGED = "merged"

@dataclass(frozen=True)
class Location:
    lat: float
    lon: float

@dataclass(frozen=True)
class Category:
    major: str
    sub: str
    leaf: str

@dataclass(frozen=True)
class MapBounds:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, loc: Location) -> bool:
        return (self.min_lat <= loc.lat <= self.max_lat
                and self.min_lon <= loc.lon <= self.max_lon)

@dataclass
class SubReport:
    location: Location
    category: Category
    description: str
    reporter_id: str
    submitted_at: datetime
    blast_radius: BlastRadius = BlastRadius.SMALL
    media: List[str] = field(default_factory=list)
    noise_level: Optional[int] = None
    sub_report_id: str = field(default_factory=new_sub_report_id)

@dataclass
class Contribution:
    """One sub-report folded into a canonical record."""
    sub_report_id: str
    reporter_id: str
    submitted_at: datetime
    leaf: str
    location: Location
    accuracy_m: int

    @classmethod
    def from_sub_report(cls, sub: SubReport) -> "Contribution":
        return cls(
            sub_report_id=sub.sub_report_id,
            reporter_id=sub.reporter_id,
            submitted_at=sub.submitted_at,
            leaf=sub.category.leaf,
            location=sub.location,
            accuracy_m=sub.blast_radius.meters,
        )

@dataclass
class CanonicalReport:
    id: str
    partition_key: str
    location: Location
    category: Category
    description: str
    created_at: datetime
    last_updated_at: datetime
    accuracy_m: int
    radius_m: int
    merged_count: int = 1
    contributor_ids: Set[str] = field(default_factory=set)
    upvote_count: int = 0
    history: List[Contribution] = field(default_factory=list)
    media: List[str] = field(default_factory=list)
    noise_level: Optional[int] = None
    merged_into: Optional[str] = None
    folded_ids: List[str] = field(default_factory=list)
    withdrawn: bool = False
    concurrency_token: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.merged_into is None and not self.withdrawn

@dataclass
class Comment:
    comment_id: str
    report_id: str
    author_id: str
    text: str
    created_at: datetime
    origin: OriginKind = OriginKind.USER_AUTHORED
    source_sub_report_id: Optional[str] = None

@dataclass
class UpvoteResult:
    upvote_count: int
    already_upvoted: bool

@dataclass
class UpvoteStatus:
    upvote_count: int
    has_upvoted: bool

@dataclass
class IngestOutcome:
    report: CanonicalReport
    action: IngestAction
    attempts: int = 1

@dataclass
class IntakeResult:
    processed_count: int = 0
    created_count: int = 0
    merged_count: int = 0
    rejected_count: int = 0
    retry_count: int = 0
    dropped_count: int = 0
    errors: List[str] = field(default_factory=list)
