import logging

from .config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(cfg: Settings) -> None:
    level = logging.DEBUG if cfg.debug_logs else logging.getLevelName(cfg.log_level_default.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    # PIL logs every plugin it probes at DEBUG.
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))
