from loguru import logger
import itertools
import sys
import time
from datetime import datetime, timezone
from langie.config import settings

_ticket_seq = itertools.count(1)


def configure_logging():
    logger.remove()
    logger.add(sys.stdout, level=settings.LOG_LEVEL, format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_ticket_id() -> str:
    # millis alone collide when two workflows start in the same tick
    return f"TKT-{int(time.time() * 1000)}-{next(_ticket_seq)}"
