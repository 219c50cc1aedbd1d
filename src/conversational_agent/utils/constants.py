"""Constants for tool names, providers, acknowledgements and retry bookkeeping."""

# HTTP configuration
USER_AGENT = "conversational-agent/0.1"

# Storage configuration
CONTEXT_STORE_DIR = "/tmp/agent_context_store"
COMMAND_STORE_DIR = "/tmp/agent_command_store"
CONTEXT_TTL_SECONDS = 24 * 60 * 60

# Working memory caps per chat
MAX_TRACKED_TOOL_CALLS = 50
MAX_TRACKED_ASSETS = 10

# Providers
IMAGE_PROVIDERS = ["gemini", "openai", "grok"]
IMAGE_EDIT_PROVIDERS = ["gemini", "openai"]
VIDEO_PROVIDERS = ["veo3", "sora", "kling"]

PROVIDER_DISPLAY_NAMES = {
    "gemini": "Gemini",
    "openai": "OpenAI",
    "grok": "Grok",
    "veo3": "Veo 3",
    "sora": "Sora 2",
    "sora-pro": "Sora 2 Pro",
    "kling": "Kling",
    "runway": "Runway",
}

# Tools that create media and may only succeed once per request
CREATION_TOOLS = frozenset(
    ["create_image", "create_video", "edit_image", "image_to_video"]
)

# Tools whose repeated identical calls are legitimate (non-deterministic output)
STOCHASTIC_TOOLS = frozenset(
    [
        "create_image",
        "create_video",
        "edit_image",
        "image_to_video",
        "create_poll",
        "text_to_speech",
        "retry_last_command",
        "retry_with_different_provider",
    ]
)

# Tools that should not be persisted for retry functionality
NON_PERSISTED_TOOLS = frozenset(
    [
        "retry_last_command",
        "get_chat_history",
        "save_user_preference",
        "get_long_term_memory",
        "transcribe_audio",
    ]
)

# Keys kept when a tool result is stored inside a retry record
SAVED_RESULT_KEYS = (
    "success",
    "data",
    "error",
    "image_url",
    "image_caption",
    "video_url",
    "audio_url",
    "provider",
    "poll",
    "latitude",
    "longitude",
    "location_info",
    "text",
    "prompt",
)

# Acknowledgement messages sent before a tool runs
TOOL_ACK_MESSAGES = {
    "create_image": "Creating image with __PROVIDER__... 🎨",
    "edit_image": "Editing image with __PROVIDER__... ✏️",
    "create_video": "Creating video with __PROVIDER__... 🎬",
    "image_to_video": "Animating image with __PROVIDER__... 🎞️",
    "text_to_speech": "Converting to speech... 🎤",
    "create_poll": "Creating poll... 📊",
    "search_web": "Searching... 🔍",
    "get_chat_history": "Fetching history... 📜",
    "get_long_term_memory": "Checking preferences... 💾",
    "save_user_preference": "Saving preference... 💾",
    "retry_with_different_provider": "Retrying with another provider... 🔄",
    "retry_last_command": "Repeating the last action... ↩️",
    "transcribe_audio": "Transcribing recording... 📝",
}

DEFAULT_ACK_MESSAGE = "Working on it... ⚙️"

# Patterns identifying acknowledgement turns in stored history
ACK_PREFIXES = (
    # English
    "Creating",
    "Editing",
    "Animating",
    "Converting",
    "Searching",
    "Fetching",
    "Checking",
    "Saving",
    "Retrying",
    "Repeating",
    "Transcribing",
    "Working on it",
    "Analyzing",
    "Translating",
    "Scheduling",
    "Summarizing",
    "Sending",
    # Hebrew
    "יוצר",
    "מבצע",
    "חושב",
    "מנתח",
    "מחפש",
    "מתמלל",
    "מתרגם",
    "עורך",
    "ממיר",
    "שולף",
    "בודק",
    "שומר",
    "מתזמן",
    "מסכם",
    "שולח",
    "משכפל",
    "מערבב",
)

ACK_SUFFIXES = (
    "... ⚙️",
    "... 🎨",
    "... 🎬",
    "... 🔍",
    "... ✏️",
    "... 🎞️",
    "... 🎵",
    "... 🎤",
    "... 📁",
    "... 📜",
    "... 💾",
    "... 🌐",
    "... 📅",
    "... 📝",
    "... 📊",
    "... 📍",
    "... 🧠",
    "... 🔄",
    "... 🔁",
    "... ↩️",
    "... 🔊",
)

# Acknowledgements are formulaic one-liners
ACK_MAX_LENGTH = 120

# User-facing messages
TIMEOUT_MESSAGE = (
    "⏱️ The operation took too long. Try a simpler request or try again later."
)
ITERATION_LIMIT_MESSAGE = (
    "I reached the maximum number of attempts. Try rephrasing the request."
)
EMPTY_ANSWER_MESSAGE = "I couldn't put together a clear answer. Please try again."
MULTI_STEP_DONE_MESSAGE = "Done."
