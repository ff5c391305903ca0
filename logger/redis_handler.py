# --- logger/redis_handler.py ---

import datetime
import json
import logging
import traceback

import redis

from constants import LOG_STREAM_PREFIX

# The handler's own messages must not reach RedisStreamHandler itself.
handler_logger = logging.getLogger('fabricbuild.redis_handler')
handler_logger.setLevel(logging.INFO)
handler_logger.propagate = False
if not handler_logger.handlers:
    _console = logging.StreamHandler()
    _console.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    handler_logger.addHandler(_console)


def record_to_entry(handler, record):
    """Dictionary form of a log record, shared by the Redis and MongoDB handlers."""
    entry = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc),
        "level": record.levelname,
        "levelno": record.levelno,
        "message": handler.format(record),
        "logger_name": record.name,
        "module": record.module,
        "lineno": record.lineno,
        "funcName": record.funcName,
    }
    if record.exc_info:
        entry['exc_text'] = "".join(traceback.format_exception(*record.exc_info))
    return entry


class RedisStreamHandler(logging.Handler):
    """
    Publishes log records for one run to a Redis channel so that progress can be
    followed live while a cluster-wide routine is running.
    """
    def __init__(self, run_id, redis_url, level=logging.NOTSET):
        super().__init__(level)
        self.run_id = run_id
        self.redis_url = redis_url
        self.channel_name = f"{LOG_STREAM_PREFIX}{self.run_id}"
        self.redis_client = None
        self._connect()

    def _connect(self):
        try:
            self.redis_client = redis.Redis.from_url(self.redis_url, decode_responses=True)
            self.redis_client.ping()
            handler_logger.debug(f"({self.run_id}) RedisStreamHandler connected to {self.redis_url}.")
        except redis.exceptions.RedisError as e:
            handler_logger.error(f"({self.run_id}) Failed Redis connection to {self.redis_url}: {e}")
            self.redis_client = None

    def emit(self, record):
        if self.redis_client is None:
            return
        try:
            entry = record_to_entry(self, record)
            entry["timestamp"] = entry["timestamp"].isoformat()
            self.redis_client.publish(self.channel_name, json.dumps(entry))
        except redis.exceptions.ConnectionError as e:
            self.redis_client = None
            handler_logger.error(f"({self.run_id}) Redis connection lost during publish: {e}. Streaming disabled.")
        except Exception:
            self.handleError(record)

    def close(self):
        if self.redis_client is not None:
            try:
                self.redis_client.close()
            except redis.exceptions.RedisError as e:
                handler_logger.error(f"({self.run_id}) Error closing Redis connection: {e}")
            finally:
                self.redis_client = None
        super().close()
