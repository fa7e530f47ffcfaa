"""
Fire-and-forget delivery of finished runs to the ingestion API.

Each send runs in a daemon thread. Failures (network errors, timeouts, non-2xx
responses, unserializable payloads) are logged and dropped; nothing is raised
back into the instrumented pipeline and nothing is retried.
"""

import json
import logging
import threading
from typing import Optional

import httpx

from .config import TracerConfig

logger = logging.getLogger(__name__)


class HttpTransport:
    """
    Posts serialized runs to ``{api_url}/runs``.

    Usage:
        transport = HttpTransport(TracerConfig.from_env())
        transport.send(run.to_dict())   # returns immediately
        transport.flush(timeout=2.0)    # optional, e.g. before a script exits
    """

    def __init__(self, config: Optional[TracerConfig] = None):
        self.config = config or TracerConfig()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def send(self, payload: dict) -> None:
        """Dispatch a run payload in the background. Never raises."""
        try:
            thread = threading.Thread(
                target=self._deliver,
                args=(payload,),
                name=f"xray-send-{payload.get('id')}",
                daemon=True,
            )
            with self._lock:
                self._threads = [t for t in self._threads if t.is_alive()]
                self._threads.append(thread)
            thread.start()
            logger.debug(f"Queued trace delivery for run {payload.get('id')}")
        except Exception as e:
            logger.error(f'Failed to dispatch trace delivery: {e}')

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries, up to timeout seconds each."""
        with self._lock:
            pending = list(self._threads)
        for thread in pending:
            thread.join(timeout)

    def _deliver(self, payload: dict) -> None:
        run_id = payload.get('id')
        try:
            body = json.dumps(payload, default=str)
            response = httpx.post(
                self.config.runs_url,
                content=body,
                headers={'Content-Type': 'application/json'},
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            logger.debug(f'Delivered trace for run {run_id}')
        except httpx.HTTPStatusError as e:
            logger.warning(
                f'Trace ingestion rejected run {run_id}: '
                f'{e.response.status_code} {e.response.text[:200]}'
            )
        except httpx.HTTPError as e:
            logger.warning(f'Failed to send trace for run {run_id}: {e}')
        except Exception as e:
            logger.error(f'Unexpected error sending trace for run {run_id}: {e}')


class NullTransport:
    """
    No-op transport for when tracing is disabled.

    Runs are still built in memory so code can unconditionally call trace methods.
    """

    def send(self, payload: dict) -> None:
        pass

    def flush(self, timeout: Optional[float] = None) -> None:
        pass
