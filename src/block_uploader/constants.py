"""Constants for block planning, progress bars and storage defaults."""

PACKAGE_ROOT = "block_uploader"

TQDM_BAR_FORMAT = "{desc} ▕{bar:50}▏ {n_fmt:>10}/{total_fmt:<10} ({rate_fmt:>12}, ETA: {remaining:>6}) {postfix}"
TQDM_DEFAULTS = {
    "bar_format": TQDM_BAR_FORMAT,
    "unit": "iB",
    "unit_scale": True,
    "miniters": 1,
    "smoothing": 0.00001,
    "colour": "cyan",
    "ascii": "░▒█",
}

# Maximum size of a single staged block (Azure Blob Storage, x-ms-version 2019-12-12 and later)
BLOCK_MAX_SIZE = 100 * 1024 * 1024  # 100 MiB

# Block IDs carry a zero-padded 5-digit index, so at most 99999 blocks fit into one upload
BLOCK_ID_INDEX_WIDTH = 5
MAX_BLOCKS = 10**BLOCK_ID_INDEX_WIDTH - 1

DEFAULT_BLOCK_ID_PREFIX = "block"
DEFAULT_SIMULTANEOUS_UPLOADS = 3

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Request timeout for storage adapters, in seconds
STORAGE_REQUEST_TIMEOUT = 300

# Recorded in the encryption artifacts; blocks are sealed without associated data
ENCRYPTION_STRATEGY = "chacha20-poly1305-ietf"
ASSOCIATED_DATA = "none"
