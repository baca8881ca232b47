# result_cache.py
# Bounded least-recently-used cache for derivative results.

import logging
import threading
from collections import OrderedDict

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 256


class ResultCache:
    """
    Maps (expression, variable, order, implicit) to a finished DerivationResult.
    Entries are never mutated once stored; the oldest unused entry is evicted
    when the capacity is reached. Can be configured from a Flask app like the
    other extensions.
    """

    def __init__(self, capacity=DEFAULT_CAPACITY):
        if capacity < 0:
            raise ValueError("Cache capacity cannot be negative")
        self.capacity = capacity
        self._entries = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def init_app(self, app):
        self.resize(int(app.config.get('DERIVATIVE_CACHE_SIZE', DEFAULT_CAPACITY)))
        app.extensions['derivative_cache'] = self

    @staticmethod
    def key(expression, variable, order, implicit):
        return (expression, variable, order, bool(implicit))

    def get(self, key):
        with self._lock:
            if key not in self._entries:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key]

    def put(self, key, value):
        if self.capacity == 0:
            return
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                return
            self._entries[key] = value
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached derivative %s", evicted)

    def resize(self, capacity):
        if capacity < 0:
            raise ValueError("Cache capacity cannot be negative")
        with self._lock:
            self.capacity = capacity
            while len(self._entries) > capacity:
                self._entries.popitem(last=False)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, key):
        with self._lock:
            return key in self._entries

    def __len__(self):
        return len(self._entries)
