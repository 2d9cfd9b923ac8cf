"""Background runner that sweeps SLA timers on an interval."""

import threading
import logging
from typing import Optional

from .processor import SlaProcessor

logger = logging.getLogger(__name__)


class SlaTaskRunner:
    """Runs ``SlaProcessor.process_sla_timers`` every ``interval_seconds``."""

    def __init__(self, processor: SlaProcessor, interval_seconds: int = 60, tenant_id: Optional[str] = None):
        self.processor = processor
        self.interval = interval_seconds
        self.tenant_id = tenant_id
        self.running = False
        self.thread = None
        self._wake = threading.Event()
        self.runs = 0

    def start(self):
        if self.running:
            return
        self.running = True
        self._wake.clear()
        self.thread = threading.Thread(target=self._run_loop, name="sla-sweeper", daemon=True)
        self.thread.start()
        logger.info(f"SLA sweeper started (interval: {self.interval}s)")

    def stop(self):
        self.running = False
        self._wake.set()
        if self.thread:
            self.thread.join(timeout=5)
        logger.info("SLA sweeper stopped")

    def run_once(self) -> int:
        result = self.processor.process_sla_timers(self.tenant_id)
        self.runs += 1
        return result["processed"]

    def _run_loop(self):
        while self.running:
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"SLA sweeper error: {e}")
            # Woken early by stop()
            self._wake.wait(self.interval)
