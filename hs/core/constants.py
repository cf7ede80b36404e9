# Store key prefixes (rows inside a partition sort by key)
KEY_REPORT = "report:"
KEY_COMMENT = "comment:"
KEY_UPVOTE = "upvote:"

# Synthetic author of merge-derived comments
MERGE_AUTHOR = "merge"

# Blast radius (meters) per submitted size
BLAST_RADIUS_M = {
    "small": 100,
    "medium": 500,
    "large": 1000,
}
DEFAULT_BLAST_RADIUS = "small"

# Matching policy defaults
MATCH_RADIUS_M = 250          # base pair radius
MAX_MATCH_RADIUS_M = 1000     # hard ceiling, envelopes never grow past it
SCAN_RADIUS_M = 1500          # must overshoot MAX_MATCH_RADIUS_M (cell edges)
TIME_WINDOW_S = 6 * 3600      # trailing window for candidates

# Scoring
WEIGHT_CATEGORY = 0.6
WEIGHT_DISTANCE = 0.3
WEIGHT_RECENCY = 0.1
TIER_LEAF = 1.0
TIER_SUB = 0.75
TIER_MAJOR = 0.25
ACCEPT_THRESHOLD = 0.4

# Optimistic concurrency
MAX_ATTEMPTS = 3
FOLD_MAX_ATTEMPTS = 10
MAX_REDIRECT_HOPS = 8

# Grid cells (degrees) for the deterministic resolver
GRID_CELL_DEG = 0.01

# Limits
MAX_DESCRIPTION_LEN = 2000
MAX_COMMENT_LEN = 1000
MAX_MEDIA_FILES = 10

# Timeouts
NOMINATIM_TIMEOUT_S = 25

# Intake runner
VERSION = "1.0.0"
LOOP_DELAY_S = 60
MAX_INBOX_ATTEMPTS = 5
