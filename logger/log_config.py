# --- logger/log_config.py ---

import atexit
import logging
import os
import sys
import threading
from urllib.parse import quote_plus

import pymongo
from dotenv import load_dotenv
from pymongo.errors import PyMongoError

from constants import DB_NAME, LOG_COLLECTION
from logger.redis_handler import RedisStreamHandler, record_to_entry

# --- Configuration ---
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_mongo_uri():
    """MongoDB URI built from MONGO_HOST/MONGO_USER/MONGO_PASSWORD, or None when MONGO_HOST is unset."""
    host = os.getenv("MONGO_HOST")
    if not host:
        return None
    user = quote_plus(os.getenv("MONGO_USER", "fabricbuild"))
    password = quote_plus(os.getenv("MONGO_PASSWORD", ""))
    return f"mongodb://{user}:{password}@{host}:27017/{DB_NAME}?serverSelectionTimeoutMS=5000"


# --- Globals for BufferingMongoLogHandler Management ---
_run_handlers = {}
_handler_lock = threading.Lock()


class BufferingMongoLogHandler(logging.Handler):
    """
    Buffers the log records of one run in memory and writes them to a single
    MongoDB document (keyed by run_id) when flushed.
    """
    def __init__(self, run_id, mongo_uri, level=logging.NOTSET,
                 db_name=DB_NAME, collection_name=LOG_COLLECTION):
        super().__init__(level)
        self.run_id = run_id
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.collection_name = collection_name
        self.buffer = []
        self._lock = threading.Lock()
        self.client = None
        self.collection = None
        self.connection_failed = not (mongo_uri and run_id)

    def _connect(self):
        if self.collection is not None:
            return True
        if self.connection_failed:
            return False
        try:
            self.client = pymongo.MongoClient(self.mongo_uri)
            self.client.admin.command('ping')
            self.collection = self.client[self.db_name][self.collection_name]
            return True
        except PyMongoError as e:
            self.connection_failed = True
            print(f"ERROR: MongoDB log handler connection failed for run {self.run_id}: {e}", file=sys.stderr)
            if self.client is not None:
                self.client.close()
            self.client = None
            return False

    def emit(self, record):
        try:
            entry = record_to_entry(self, record)
            with self._lock:
                self.buffer.append(entry)
        except Exception:
            self.handleError(record)

    def flush(self):
        """Writes buffered records to MongoDB. Records are kept in the buffer if the write fails."""
        with self._lock:
            pending = self.buffer[:]
            self.buffer.clear()
        if not pending:
            return True
        if not self._connect():
            with self._lock:
                self.buffer = pending + self.buffer
            return False
        try:
            self.collection.update_one(
                {'run_id': self.run_id},
                {
                    '$push': {'messages': {'$each': pending}},
                    '$setOnInsert': {'run_id': self.run_id, 'first_log_time': pending[0]['timestamp']},
                    '$set': {'last_log_time': pending[-1]['timestamp']},
                    '$inc': {'log_count': len(pending)},
                },
                upsert=True,
            )
            return True
        except PyMongoError as e:
            print(f"ERROR: Failed writing logs to MongoDB for run {self.run_id}: {e}", file=sys.stderr)
            with self._lock:
                self.buffer = pending + self.buffer
            return False

    def close(self):
        self.flush()
        if self.client is not None:
            self.client.close()
            self.client = None
            self.collection = None
        super().close()


def _cleanup_all_handlers():
    """Flushes and closes the per-run handlers on interpreter exit."""
    with _handler_lock:
        handlers = list(_run_handlers.values())
        _run_handlers.clear()
    for handler in handlers:
        handler.close()
    root = logging.getLogger('fabricbuild')
    for handler in list(root.handlers):
        if isinstance(handler, RedisStreamHandler):
            handler.close()
            root.removeHandler(handler)


atexit.register(_cleanup_all_handlers)


def setup_logger(run_id=None, verbose=False):
    """
    Configures and returns the top-level 'fabricbuild' logger.

    Always attaches a console handler. When run_id is given, a MongoDB buffering
    handler (MONGO_HOST) and a Redis stream handler (REDIS_URL) are attached if
    configured. Modules log through children such as 'fabricbuild.vcenter'.
    """
    logger = logging.getLogger('fabricbuild')
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Calling twice must not duplicate output.
    for handler in list(logger.handlers):
        if not isinstance(handler, BufferingMongoLogHandler):
            handler.close()
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    mongo_uri = get_mongo_uri()
    if run_id and mongo_uri:
        with _handler_lock:
            mongo_handler = _run_handlers.get(run_id)
            if mongo_handler is None:
                mongo_handler = BufferingMongoLogHandler(run_id, mongo_uri, level=logging.DEBUG)
                mongo_handler.setFormatter(formatter)
                _run_handlers[run_id] = mongo_handler
        logger.addHandler(mongo_handler)

    redis_url = os.getenv("REDIS_URL")
    if run_id and redis_url:
        redis_handler = RedisStreamHandler(run_id, redis_url, level=logging.DEBUG)
        if redis_handler.redis_client is not None:
            redis_handler.setFormatter(formatter)
            logger.addHandler(redis_handler)
        else:
            logger.warning(f"Real-time log streaming disabled for run {run_id}.")
            redis_handler.close()

    logger.propagate = False
    return logger


def flush_run_logs(run_id):
    """Flushes the MongoDB handler of a run. Returns False if there is none or the write failed."""
    with _handler_lock:
        handler = _run_handlers.get(run_id)
    return handler.flush() if handler else False
