"""HTTP client with bounded timeouts and retries."""
import time
import logging
import requests

logger = logging.getLogger("governor.http")


class APIError(Exception):
    """HTTP collaborator error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source


class HTTPClient:
    """JSON-over-HTTP client used to reach external collaborators.

    Every request carries a timeout, so callers on the evaluation path
    never block longer than ``timeout * (max_retries + 1)`` plus backoff.
    """

    RETRYABLE_STATUS = {429, 500, 502, 504}
    NON_RETRYABLE_STATUS = {400, 401, 403, 404}

    def __init__(self, base_url, timeout=5, max_retries=0, backoff_seconds=0.5,
                 accept_status=(200,), source=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.accept_status = set(accept_status)
        self.source = source or self.base_url
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "RequestGovernor/1.0"})

    def get(self, path="", params=None):
        """Make a GET request and return decoded JSON (or text)."""
        return self._request("GET", path, params=params)

    def post(self, path="", payload=None):
        return self._request("POST", path, json=payload)

    def _request(self, method, path, params=None, json=None):
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                start = time.time()
                resp = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
                latency = int((time.time() - start) * 1000)
                logger.debug(f"{method} {url} → {resp.status_code} ({latency}ms)")

                if resp.status_code in self.accept_status:
                    try:
                        return resp.json()
                    except ValueError:
                        return resp.text

                if resp.status_code in self.NON_RETRYABLE_STATUS:
                    raise APIError(
                        f"HTTP {resp.status_code} from {url}",
                        status_code=resp.status_code,
                        response_body=resp.text,
                        source=self.source,
                    )

                last_error = APIError(
                    f"HTTP {resp.status_code} from {url}",
                    status_code=resp.status_code,
                    response_body=resp.text,
                    source=self.source,
                )
                if resp.status_code not in self.RETRYABLE_STATUS:
                    raise last_error
                logger.warning(f"Retryable {resp.status_code} from {url} (attempt {attempt + 1})")

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = APIError(str(e), source=self.source)

            if attempt < self.max_retries:
                time.sleep(self.backoff_seconds * (2 ** attempt))

        raise last_error or APIError(f"Max retries exceeded for {url}", source=self.source)
