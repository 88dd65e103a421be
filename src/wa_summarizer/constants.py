"""Centralized constants for wa-summarizer."""

# Messaging apps whose events are captured
WHATSAPP_PACKAGE = "com.whatsapp"
WHATSAPP_BUSINESS_PACKAGE = "com.whatsapp.w4b"
DEFAULT_ALLOWED_PACKAGES = (WHATSAPP_PACKAGE, WHATSAPP_BUSINESS_PACKAGE)

# Durable store keys
UNREAD_MESSAGES_KEY = "unread_messages"
GEMINI_API_KEY_KEY = "gemini_api_key"

# Capture
MAX_OBSERVATION_TEXT_LENGTH = 500  # longer text is a screen dump, not a chat bubble
SENDER_SEARCH_DEPTH = 5
MAX_TREE_DEPTH = 64
DEFAULT_CHAT_NAME = "Unknown"
ACCESSIBILITY_CHAT_NAME = "WhatsApp Chat"
SELF_SENDER = "You"

# Summarization
DEBOUNCE_SECONDS = 2.0
SUMMARIZE_TIMEOUT_SECONDS = 30.0
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
NO_MESSAGES_TEXT = "No messages to summarize"
