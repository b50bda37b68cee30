"""
socrata_fetcher.py
This code retrieves raw restaurant inspection rows from the NYC Open Data
(Socrata) API one page at a time.

Each request is sorted by camis so that $offset pagination stays stable
across pages. Timeouts, dropped connections and server errors are retried
on the same offset; a response that is not an array of inspection rows is
reported straight away.

Run it from the project's root folder to print the first page:
    python -m ingest_service.ingestion.socrata_fetcher
"""
import json
import logging
import time

import requests
from jsonschema import validate, ValidationError

from ingest_service import config
from ingest_service.errors import NetworkError, DecodeError
from ingest_service.models import INSPECTION_COLUMNS, InspectionRecord

logger = logging.getLogger(__name__)

# Each page must be a list of row objects with at least camis and dba
PAGE_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "camis": {"type": "string"},
            "dba": {"type": "string"},
        },
        "required": ["camis", "dba"],
    },
}

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def build_params(offset, page_size):
    """Socrata query parameters for one page."""
    return {
        "$limit": page_size,
        "$offset": offset,
        "$order": "camis",
        "$select": ",".join(INSPECTION_COLUMNS),
    }


def _headers():
    headers = {"Accept": "application/json", "Cache-Control": "no-cache"}
    if config.SOCRATA_APP_TOKEN:
        headers["X-App-Token"] = config.SOCRATA_APP_TOKEN
    return headers


def _request_page(url, offset, page_size, timeout):
    """One GET, no retries. Returns the decoded rows or raises."""
    response = requests.get(
        url,
        params=build_params(offset, page_size),
        headers=_headers(),
        timeout=timeout,
    )
    response.raise_for_status()

    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError) as jsonError:
        raise DecodeError(
            f"The JSON data at offset {offset} is not valid. \nError: {jsonError}",
            "Data format error: the server returned data that could not be read.",
        ) from jsonError

    try:
        validate(instance=data, schema=PAGE_SCHEMA)
    except ValidationError as error:
        raise DecodeError(
            f"Page at offset {offset} does not match the inspection row format: {error.message}",
            "Data format error: the server returned data in an unexpected format.",
        ) from error

    return data


def _network_error(error, offset):
    """Turn a requests exception into a NetworkError with a readable cause."""
    if isinstance(error, requests.exceptions.Timeout):
        user_message = "Request timed out. Please try again."
    elif isinstance(error, requests.exceptions.ConnectionError):
        user_message = "No internet connection. Please check your network."
    elif isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        user_message = f"Network error: the server responded with HTTP {error.response.status_code}."
    else:
        user_message = f"Network error: {error}"
    return NetworkError(f"Fetching offset {offset} failed: {error}", user_message)


def fetch_page(offset, page_size=None, url=None, timeout=None, max_retries=None, retry_delay=None):
    """
    Fetch one page of inspection rows starting at offset.

    Transient failures are retried on the same offset up to max_retries
    times with a fixed delay in between. Decode errors and client-side
    HTTP errors are raised without retrying.

    Returns:
        list[InspectionRecord]
    """
    page_size = page_size or config.PAGE_SIZE
    url = url or config.SOCRATA_URL
    timeout = config.REQUEST_TIMEOUT if timeout is None else timeout
    max_retries = config.MAX_RETRIES if max_retries is None else max_retries
    retry_delay = config.RETRY_DELAY if retry_delay is None else retry_delay

    attempt = 0
    while True:
        try:
            logger.info(f"Fetching restaurants {offset + 1} to {offset + page_size} from {url}")
            data = _request_page(url, offset, page_size, timeout)
            logger.info(f"Received {len(data)} inspection rows from offset {offset}")
            return [InspectionRecord.from_json(row) for row in data]

        except requests.exceptions.HTTPError as httpError:
            code = httpError.response.status_code if httpError.response is not None else None
            if code not in RETRYABLE_STATUS_CODES:
                logger.error(f"HTTP error {code} at offset {offset}, not retrying")
                raise _network_error(httpError, offset) from httpError
            error = httpError

        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as requestError:
            error = requestError

        except requests.exceptions.RequestException as requestError:
            logger.error(f"Request for offset {offset} failed: {requestError}")
            raise _network_error(requestError, offset) from requestError

        if attempt >= max_retries:
            logger.error(f"Max retries reached for offset {offset}: {error}")
            raise _network_error(error, offset) from error

        attempt += 1
        logger.warning(f"Request for offset {offset} failed ({error}), retrying (attempt {attempt}/{max_retries}) in {retry_delay}s...")
        time.sleep(retry_delay)


def iter_pages(page_size=None, start_offset=0, **kwargs):
    """
    Yield (offset, rows) for every page of the dataset.

    Stops after the first page with fewer rows than page_size.
    """
    page_size = page_size or config.PAGE_SIZE
    offset = start_offset
    while True:
        rows = fetch_page(offset, page_size, **kwargs)
        yield offset, rows
        if len(rows) < page_size:
            return
        offset += page_size


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)
    first_page = fetch_page(0, page_size=10)
    for record in first_page:
        print(f"{record.camis} {record.dba} ({record.boro}) {record.inspection_date} grade={record.grade}")
