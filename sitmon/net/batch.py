"""
Fan-out fetching with per-request failure isolation.

Every request runs on its own worker through the proxy racer. The
result list has one outcome per request, in input order; a failure is
recorded in that request's outcome and never raised.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union

from sitmon.config import config
from sitmon.net.fetch import FetchOptions
from sitmon.net.proxy import ProxyRacer

logger = logging.getLogger(__name__)

SUCCESS = 'success'
FAILURE = 'failure'


@dataclass
class BatchRequest:
    """One independent fetch in a batch."""
    url: str
    options: Optional[FetchOptions] = None
    source_label: Optional[str] = None

    @property
    def label(self) -> str:
        return self.source_label or self.url

    @classmethod
    def from_dict(cls, data: dict) -> 'BatchRequest':
        return cls(
            url=data['url'],
            options=FetchOptions.from_dict(data.get('options')),
            source_label=data.get('source') or data.get('source_label'),
        )


@dataclass
class Outcome:
    """Tagged result of one batch request."""
    status: str
    source_label: str
    payload: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def to_dict(self) -> dict:
        """JSON-serializable form for API responses."""
        result = {'status': self.status, 'source': self.source_label}
        if self.ok:
            result['data'] = self.payload
        else:
            result['error'] = str(self.error)
            result['error_type'] = type(self.error).__name__
        return result


class BatchFetcher:
    """Runs a list of requests in parallel and collects every outcome."""

    def __init__(
        self,
        racer: Optional[ProxyRacer] = None,
        max_workers: int = None,
    ):
        if max_workers is None:
            max_workers = config.network.batch_max_workers
        if max_workers < 1:
            raise ValueError(f'max_workers must be at least 1, got {max_workers}')
        self.racer = racer if racer is not None else ProxyRacer()
        self.max_workers = max_workers

    def fetch_all(self, requests: Sequence[Union[BatchRequest, dict]]) -> List[Outcome]:
        """
        Fetch every request; never raises for individual failures.

        Malformed dict entries (bad options, missing url) fail on their
        own outcome like any other request.

        Returns:
            One Outcome per request, in input order.
        """
        if not requests:
            return []

        workers = min(self.max_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='batch') as executor:
            outcomes = list(executor.map(self._run_one, requests))

        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.info(f'Batch finished: {len(outcomes) - failed}/{len(outcomes)} succeeded')
        return outcomes

    def _run_one(self, entry: Union[BatchRequest, dict]) -> Outcome:
        label = _entry_label(entry)
        try:
            request = entry if isinstance(entry, BatchRequest) else BatchRequest.from_dict(entry)
            label = request.label
            payload = self.racer.fetch_via_best_route(request.url, request.options)
        except Exception as e:
            # Isolation boundary: every failure becomes an outcome
            logger.warning(f'Batch request {label} failed: {e}')
            return Outcome(status=FAILURE, source_label=label, error=e)
        return Outcome(status=SUCCESS, source_label=label, payload=payload)


def _entry_label(entry: Union[BatchRequest, dict]) -> str:
    if isinstance(entry, BatchRequest):
        return entry.label
    if isinstance(entry, dict):
        label = entry.get('source') or entry.get('source_label') or entry.get('url')
        if label:
            return str(label)
    return repr(entry)
