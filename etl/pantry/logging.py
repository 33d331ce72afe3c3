import logging
from rich.logging import RichHandler
from rich.console import Console

_LOGGER = logging.getLogger("pantry")
_HANDLER = RichHandler(rich_tracebacks=True, markup=True)
_FORMAT = "%(message)s"
_CONSOLE = Console()

def set_verbosity(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=_FORMAT, datefmt="[%X]", handlers=[_HANDLER])
    _LOGGER.setLevel(level)

def log() -> logging.Logger:
    return _LOGGER

def console() -> Console:
    """Get the Rich console for styled output."""
    return _CONSOLE
