# budgetchat protocol constants (wire literals and limits)

# Server -> client lines
WELCOME_PROMPT = "Welcome to budgetchat! What shall I call you?"
ERR_NAME = "error: name is empty"

ROOM_CONTAINS_FMT = "* The room contains: {names}"
ENTERED_FMT = "* {name} has entered the room"
LEFT_FMT = "* {name} has left the room"
CHAT_FMT = "[{name}] {text}"

LINE_TERMINATOR = "\n"
LINE_ENCODING = "utf-8"
# Lets arbitrary bytes survive a decode/encode round trip unchanged.
LINE_ERRORS = "surrogateescape"

NAME_MAX_CHARS = 32

# Address shape for the relay rewriter
ADDRESS_PREFIX = "7"
ADDRESS_MIN_CHARS = 26
ADDRESS_MAX_CHARS = 35

DEFAULT_REPLACEMENT_ADDRESS = "7YWHMfk9JZe0LM0g1ZauHuiSxhI"
DEFAULT_UPSTREAM_HOST = "chat.protohackers.com"
DEFAULT_UPSTREAM_PORT = 16963

DEFAULT_CHAT_PORT = 8000
DEFAULT_RELAY_PORT = 8001

# Per-consumer backlog bound on the broadcast bus
BUS_CAPACITY = 100

# asyncio.StreamReader limit; longer lines are a transport error
MAX_LINE_BYTES = 64 * 1024
