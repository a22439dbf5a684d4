"""Protocol constants shared by the foreground and the worker thread."""

PROMPT_MARKER: str = ">> "
SUCCESS_MARKER: str = "=> "
ERROR_MARKER: str = "!! "

# ``script`` gives osascript a pty so its output is line-buffered.
DEFAULT_COMMAND: tuple[str, ...] = (
    "/usr/bin/script",
    "-q",
    "/dev/null",
    "/usr/bin/osascript",
    "-l",
    "JavaScript",
    "-i",
)

RESULT_BUFFER_SIZE: int = 16000
MIN_BUFFER_SIZE: int = 256
DEFAULT_SHUTDOWN_TIMEOUT: float = 2.0

STATUS_PENDING: int = 0
STATUS_OK: int = 1
STATUS_ERROR: int = 2

CALL_SPAWN: str = "spawn"
CALL_EXECUTE: str = "execute"
CALL_CREATE_VAR: str = "createVar"
CALL_DISPOSE: str = "dispose"

GLOBAL_VAR_NAME: str = "globalThis"
