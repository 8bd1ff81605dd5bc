import logging
from typing import Union


def configure_logger(level: Union[int, str] = logging.INFO, name: str = "pyretain") -> logging.Logger:
    """
    Attach a single stderr handler to the 'pyretain' logger hierarchy and set
    its level. `level` may be a number or a level name from config ("DEBUG").
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    root = logging.getLogger("pyretain")
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[pyretain] %(levelname)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger(name)
