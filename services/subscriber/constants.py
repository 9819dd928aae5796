"""Constants of the Subscriber node."""

# Path the broker posts notifications to, relative to the node's base URL
DEFAULT_EVENT_NOTIFICATION_BASE_URI = "notify"

ECHO_RESPONSE = "Got it!"
