# noke/plugins/constants.py
"""Values shared by the server side of the pairing protocol and the plugin client."""

# Lifetime of an auth-request token. The client stops polling check-auth after
# the same window, so both sides must read it from here.
AUTH_REQUEST_TTL_SECONDS = 300

DEFAULT_POLL_INTERVAL_SECONDS = 2.0

# Partition holding plugin instances that no user owns (yet, or any more)
UNOWNED_PARTITION = "_plugins"

PLUGIN_INSTANCE_DOC_TYPE = "plugin_instance"

# Bounded retries for conditional writes that lost to a concurrent writer
MAX_WRITE_ATTEMPTS = 3

MAX_REGISTRATION_ATTEMPTS = 3

# Header names used by data-plane requests
PLUGIN_ID_HEADER = "x-plugin-id"
API_KEY_HEADER = "x-api-key"
