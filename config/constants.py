"""
Centralized constants for the policy table job client.
All magic numbers for polling, batching and the relay live here.
"""

# ===========================================
# STATUS POLLING
# ===========================================
POLL_FAST_INTERVAL_SECONDS = 2.0      # queued with movement, or processing
POLL_SLOW_INTERVAL_SECONDS = 10.0     # queued and stalled
POLL_STALL_THRESHOLD = 3              # slow tier once unchanged polls exceed this

# ===========================================
# BATCH PROCESSING
# ===========================================
BATCH_SETTLE_DELAY_SECONDS = 2.0      # wait after a terminal job before the next submit
BATCH_LANE_CAPACITY = 1               # relay cannot process overlapping requests

# ===========================================
# SUBMISSION
# ===========================================
SUBMIT_MAX_RETRIES = 3                # transient failures only
SUBMIT_RETRY_DELAY = 2.0              # base delay for exponential backoff
SUBMIT_MAX_RETRY_DELAY = 10.0

# ===========================================
# RELAY / HTTP
# ===========================================
RELAY_BASE_URL = 'http://localhost:4000/api'
RELAY_TIMEOUT_SECONDS = 30.0
GENERATE_PATH = '/policy-table/generate'
STATUS_PATH = '/policy-table/generate/{job_id}/status'
REGISTER_PATH = '/policy-tables/{artifact_id}/register'
HEADER_USER_ID = 'x-user-id'
HEADER_USER_ROLE = 'x-user-role'

# ===========================================
# PREFERENCES
# ===========================================
PREFERENCES_DB = 'data/preferences.db'

# ===========================================
# LOGGING
# ===========================================
LOG_ROOT = 'policy_jobs'
LOG_LEVEL = 'DEBUG'
LOG_CONSOLE_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/policy_jobs.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
