"""Job capacity and pacing defaults for Drive Handover.

These constants are the defaults behind every tunable of a tick. They can be
overridden through environment settings (see ``drive_handover.config.settings``),
which are validated against the bounds defined here.
"""

# Number of eligible items mutated per flush.
#
# Small batches bound memory and bound how much work a single partial failure
# can affect. The inter-batch delay below is honored after every flush.
DEFAULT_BATCH_SIZE = 20
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 100

# Items requested per files.list call.
DEFAULT_PAGE_SIZE = 60
MAX_PAGE_SIZE = 1000

# Hard execution ceiling of the hosting environment, in seconds.
# A tick stops voluntarily at SOFT_DEADLINE_RATIO of this value.
DEFAULT_HARD_LIMIT_SECONDS = 360.0
DEFAULT_SOFT_DEADLINE_RATIO = 0.92

# Cooperative throttles, in seconds.
DEFAULT_INTER_BATCH_DELAY_SECONDS = 0.5
DEFAULT_ACCEPT_ITEM_DELAY_SECONDS = 0.2
DEFAULT_TRANSFER_ITEM_DELAY_SECONDS = 0.25

# Transient mutation failures are retried this many times after the first
# attempt, waiting RETRY_BASE_DELAY * 2 ** (retry - 1) seconds before each.
DEFAULT_MAX_RETRIES = 1
MAX_RETRIES_LIMIT = 5
DEFAULT_RETRY_BASE_DELAY_SECONDS = 2.0

# Once a quota error is seen, every job of the same action family stays inert
# for this long.
DEFAULT_COOLDOWN_HOURS = 24.0

DEFAULT_CHECKPOINT_FILE = "data/checkpoints.json"
