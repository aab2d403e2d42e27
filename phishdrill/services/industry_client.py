import logging
import time
from typing import Callable, Dict, List, Optional

import requests

from phishdrill.schemas import EmailRecord

logger = logging.getLogger(__name__)


class IndustryClient:
    """HTTP side of the drill: deploy generated emails and read attack metrics"""

    def __init__(self,
                 base_url: str,
                 max_retries: int = 3,
                 timeout: float = 10,
                 session: requests.Session = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.base_url = base_url.rstrip('/')
        self.max_retries = max_retries
        self.timeout = timeout
        self.sleep = sleep

        # Reuse TCP connections across cycles
        self.http_session = session or requests.Session()
        self.http_session.headers.update({'User-Agent': 'PhishDrill-Agent/1.0'})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Retry connection-level failures, waiting 1s, 2s, ... between attempts"""
        url = f"{self.base_url}{path}"
        for attempt in range(self.max_retries):
            try:
                response = self.http_session.request(method, url, timeout=self.timeout, **kwargs)
                response.raise_for_status()
                return response
            except requests.RequestException as e:
                if attempt == self.max_retries - 1:
                    raise
                logger.warning(f"⚠️ {method} {url} failed ({e}), retrying")
                self.sleep(1 * (attempt + 1))

    def deploy_emails(self, emails: List[EmailRecord]) -> Dict:
        payload = {'emails': [e.to_wire() for e in emails]}
        response = self._request('POST', '/agent/deploy-emails', json=payload)
        logger.info(f"✓ Deployed {len(emails)} emails to {self.base_url}")
        return response.json()

    def get_metrics(self) -> Optional[Dict]:
        try:
            return self._request('GET', '/agent/metrics').json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"⚠️ Could not fetch industry metrics: {e}")
            return None
