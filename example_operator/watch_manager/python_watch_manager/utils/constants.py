"""Useful Constants"""


## Reconcile Constants

# Default timeout in seconds when joining worker threads on shutdown
JOIN_WORKER_TIMEOUT = 5

## Timer Constants

# Minimum wait time between checks in periodic thread
MIN_SLEEP_TIME = 0.05

## Watch Constants

# Only keep a set number of fingerprints per watch. This limits the amount of
# memory used by watches over many short lived resources
FINGERPRINT_KEEP_COUNT = 10000
