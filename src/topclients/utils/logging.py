import os
import random
import string
import sys
from datetime import datetime

from loguru import logger


def get_env_bool(name, default=None):
    env_var = os.environ.get(name, None)
    return default if env_var is None else (env_var.lower().strip() in ("yes", "true", "t", "1"))


TOPCLIENTS_COLORIZE_LOGS = get_env_bool("TOPCLIENTS_COLORIZE_LOGS")
TOPCLIENTS_COLORIZE_LOG_FILES = get_env_bool("TOPCLIENTS_COLORIZE_LOG_FILES", False)

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | <level>{level: <8}</level> | {name}:{function}:{line} - <level>{message}</level>"
)


def get_timestamp() -> str:
    """
    Current local time formatted to be used in folder names
    """
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")


def get_random_str(length=5):
    return "".join(random.choice(string.ascii_lowercase) for _ in range(length))


def add_task_logger(logging_dir, rank: int, local_rank: int = 0):
    """
    Sets up logging for a given task: console output (only errors for local_rank != 0) and a full DEBUG log file
    at `logs/task_{rank:05d}.log` inside `logging_dir`.

    Args:
      logging_dir: DataFolder
      rank: int: rank of the task
      local_rank: int:  (Default value = 0)

    Returns: the open log file, to be passed to `close_task_logger`
    """
    logger.remove()
    logfile = logging_dir.open(f"logs/task_{rank:05d}.log", "w")
    logger.add(
        sys.stderr,
        colorize=TOPCLIENTS_COLORIZE_LOGS,
        level="INFO" if local_rank == 0 else "ERROR",
        format=LOG_FORMAT,
    )
    logger.add(logfile, colorize=TOPCLIENTS_COLORIZE_LOG_FILES, level="DEBUG", format=LOG_FORMAT)
    logger.info(f"Launching pipeline for {rank=}")
    return logfile


def close_task_logger(logfile):
    """
    Close logfile and reset logging setup
    """
    logger.complete()
    setup_default_logger()
    logfile.close()


def setup_default_logger():
    logger.remove()
    logger.add(sys.stderr, colorize=TOPCLIENTS_COLORIZE_LOGS)


def log_pipeline(pipeline):
    steps = "\n".join([pipe.__repr__() if callable(pipe) else "Iterable" for pipe in pipeline])
    logger.info(f"\n--- 🛠️ PIPELINE 🛠\n{steps}")


setup_default_logger()
