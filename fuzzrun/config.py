# fuzzrun/config.py
"""
Global configuration settings for the request runner.
Modify these values to change the default behavior of the tool.
"""

# --- Network Settings ---
# Default timeout for all HTTP requests in seconds.
# Applied to the TCP dial, the TLS handshake and the whole request.
DEFAULT_TIMEOUT = 10

# Base User-Agent sent when a request template does not set one.
# The tool version is appended as " v<version>".
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/94.0.4606.61 Safari/537.36"

# Follow 3xx responses. When False the redirect itself is returned so
# filters can score it.
FOLLOW_REDIRECTS = False

# --- Connection Pool ---
# Idle and active connection caps of the shared client.
MAX_IDLE_CONNS = 1000
MAX_IDLE_CONNS_PER_HOST = 500
MAX_CONNS_PER_HOST = 500

# --- Response Handling ---
# Bodies larger than this (5 MiB) are not downloaded.
MAX_DOWNLOAD_SIZE = 5242880

# --- Logging and Verbosity ---
# Set to True for more detailed output during execution.
# Can be overridden by the --verbose command-line flag.
VERBOSE_MODE = False
