# services/providers/http.py
import logging
import time
import requests
from typing import Optional, Dict, Any

DEFAULT_TIMEOUT = 10
DEFAULT_MAX_RETRIES = 2
DEFAULT_UA = "WayWise/1.0"

logger = logging.getLogger(__name__)

# פרמטרים שאסור שיגיעו ללוג או להודעת שגיאה
SECRET_PARAMS = ("key", "api_key", "access_token", "server_token")


class ProviderError(RuntimeError):
    """Transport-level failure (HTTP status, timeout, bad JSON) after retries."""
    pass


class Http:
    """
    עטיפת HTTP עם retries/backoff, כותרת User-Agent, וטיים-אאוט.
    Every external source in the engine goes through get_json(); a timeout is just
    another ProviderError for the caller.
    """
    def __init__(self, user_agent: str = DEFAULT_UA, timeout: float = DEFAULT_TIMEOUT,
                 max_retries: int = DEFAULT_MAX_RETRIES, backoff: float = 0.6):
        self.user_agent = user_agent or DEFAULT_UA
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None) -> Any:
        req_headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if headers:
            req_headers.update(headers)

        use_timeout = timeout if timeout is not None else self.timeout
        attempts = max(self.max_retries or 1, 1)

        for attempt in range(1, attempts + 1):
            try:
                r = requests.get(url, params=params, headers=req_headers, timeout=use_timeout)
                if r.status_code >= 400:
                    raise ProviderError(f"{url} -> HTTP {r.status_code}: {r.text[:200]}")
                return r.json()
            except (requests.RequestException, ValueError, ProviderError) as e:
                msg = _redact(str(e), params)
                if attempt < attempts:
                    logger.debug("GET %s failed (attempt %d/%d): %s", url, attempt, attempts, msg)
                    # backoff לינארי פשוט: 0.6s, 1.2s, 1.8s...
                    time.sleep(self.backoff * attempt)
                elif isinstance(e, ProviderError):
                    raise ProviderError(msg) from None
                else:
                    raise ProviderError(f"Failed {url}: {msg}") from e


def _redact(text: str, params: Optional[Dict[str, Any]]) -> str:
    for name in SECRET_PARAMS:
        value = (params or {}).get(name)
        if value:
            text = text.replace(str(value), "***")
    return text
