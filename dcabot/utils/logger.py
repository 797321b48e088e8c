import logging
from datetime import datetime
from config import LOG_LEVEL

LOG_LEVELS = {"DEBUG": 1, "INFO": 2, "WARNING": 3, "ERROR": 4}
LEVEL_COLOR_CODES = {
    "DEBUG": "\033[94m",
    "INFO": "\033[92m",
    "WARNING": "\033[93m",
    "ERROR": "\033[91m"
}
TIMESTAMP_COLOR_CODE = "\033[96m"
RESET_COLOR_CODE = "\033[0m"


# Print log message
def log(level, msg):
    if LOG_LEVELS.get(level, 2) >= LOG_LEVELS.get(LOG_LEVEL, 2):
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        level_space = " " * (8 - len(level))
        print(f"{TIMESTAMP_COLOR_CODE}[{timestamp}] {LEVEL_COLOR_CODES[level]}[{level}]{RESET_COLOR_CODE}{level_space}{msg}", flush=True)


# Print debug log message
def debug(msg):
    log("DEBUG", msg)


# Print info log message
def info(msg):
    log("INFO", msg)


# Print warning log message
def warning(msg):
    log("WARNING", msg)


# Print error log message
def error(msg):
    log("ERROR", msg)


# ============================================================================
# Bridge: Route Python's standard logging module through the custom logger
# ============================================================================
# The dca, web and event-bus modules use logging.getLogger(__name__). This
# handler sends their records through log() so all output shares one format.

class _BridgeHandler(logging.Handler):
    """Routes standard logging records through the custom log() function."""
    def emit(self, record):
        level = record.levelname
        if level == "CRITICAL":
            level = "ERROR"
        if level not in LEVEL_COLOR_CODES:
            level = "INFO"
        log(level, record.getMessage())


_level_map = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR}
_std_level = _level_map.get(LOG_LEVEL, logging.INFO)

# Configure the root logger once so all getLogger(__name__) loggers inherit it
if not any(isinstance(h, _BridgeHandler) for h in logging.root.handlers):
    _bridge = _BridgeHandler()
    _bridge.setLevel(_std_level)
    logging.root.addHandler(_bridge)
    logging.root.setLevel(_std_level)
