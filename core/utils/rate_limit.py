# core/utils/rate_limit.py

import logging
import random
import threading
import time
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self,
                 min_delay: float = 0.1,
                 max_delay: float = 0.2,
                 burst_size: int = 50,
                 min_burst_delay: float = 1.0,
                 max_burst_delay: float = 2.0):
        """
        Initialize rate limiter with configurable delays.

        Args:
            min_delay: Minimum delay between requests in seconds
            max_delay: Maximum delay between requests in seconds
            burst_size: Number of requests before triggering burst delay
            min_burst_delay: Minimum pause after burst_size requests in seconds
            max_burst_delay: Maximum pause after burst_size requests in seconds
        """
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.burst_size = burst_size
        self.min_burst_delay = min_burst_delay
        self.max_burst_delay = max_burst_delay
        self.request_count = 0
        self.last_request_time: Optional[datetime] = None
        self._lock = threading.Lock()

    def delay(self) -> None:
        """Apply appropriate delay before next request"""
        # Serialized so concurrent batch workers still space their requests
        with self._lock:
            current_time = datetime.now()

            if self.last_request_time:
                time_since_last = (current_time - self.last_request_time).total_seconds()

                if self.request_count >= self.burst_size:
                    burst_delay = random.uniform(self.min_burst_delay, self.max_burst_delay)
                    logger.debug(f"Taking a longer break for {burst_delay:.1f} seconds")
                    time.sleep(burst_delay)
                    self.request_count = 0
                else:
                    delay = random.uniform(self.min_delay, self.max_delay)
                    if time_since_last < delay:
                        time.sleep(delay - time_since_last)

            self.request_count += 1
            self.last_request_time = datetime.now()
