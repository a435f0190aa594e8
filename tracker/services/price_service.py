"""
Retailer fuel price aggregation.

Fetches the UK Open Data Scheme retailer feeds in parallel and averages them:
- Schema-tolerant parsing (top-level list, ``stations``, ``data`` or a single record)
- Per-field alternate key spellings; bad values dropped per field, not per record
- Every request bounded by its own timeout; all requests settle before averaging
- Static defaults when no retailer responds, or when anything unexpected fails

Prices are pence per litre.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests
from config import Config
from utils.error_codes import ErrorCode, StructuredError
from utils.timezone import utc_now
from utils.wide_events import WideEvent

logger = logging.getLogger(__name__)

RETAILER_ENDPOINTS: Dict[str, str] = {
    "Ascona Group": "https://fuelprices.asconagroup.co.uk/newfuel.json",
    "Asda": "https://storelocator.asda.com/fuel_prices_data.json",
    "BP": "https://www.bp.com/en_gb/united-kingdom/home/fuelprices/fuel_prices_data.json",
    "Esso Tesco Alliance": "https://fuelprices.esso.co.uk/latestdata.json",
    "JET Retail UK": "https://jetlocal.co.uk/fuel_prices_data.json",
    "Karan Retail Ltd": "https://api.krl.live/integration/live_price/krl",
    "Morrisons": "https://www.morrisons.com/fuel-prices/fuel.json",
    "Moto": "https://moto-way.com/fuel-price/fuel_prices.json",
    "Motor Fuel Group": "https://fuel.motorfuelgroup.com/fuel_prices_data.json",
    "Rontec": "https://www.rontec-servicestations.co.uk/fuel-prices/data/fuel_prices_data.json",
    "Sainsbury's": "https://api.sainsburys.co.uk/v1/exports/latest/fuel_prices_data.json",
    "SGN": "https://www.sgnretail.uk/files/data/SGN_daily_fuel_prices.json",
    "Tesco": "https://www.tesco.com/fuel_prices/fuel_prices_data.json",
}

REQUEST_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Fuel-Tracker/1.0",
}

PRICE_FIELDS = ("unleaded", "diesel", "super_unleaded", "premium_diesel")

# Output field -> station keys to try, in order
FIELD_KEYS: Dict[str, tuple] = {
    "unleaded": ("unleaded", "petrol", "ULSP", "ulsp", "Unleaded", "UNLEADED"),
    "diesel": ("diesel", "ULSD", "ulsd", "Diesel", "DIESEL"),
    "super_unleaded": ("superUnleaded", "super_unleaded", "super", "Super Unleaded", "SUPER_UNLEADED"),
    "premium_diesel": ("premiumDiesel", "premium_diesel", "premium", "Premium Diesel", "PREMIUM_DIESEL"),
}

SOURCE_MANUAL = "MANUAL"
SOURCE_RETAILER_AVERAGE = "RETAILER_AVERAGE"

# Stamped once at import; served verbatim whenever no retailer data is usable
DEFAULT_PRICES: Dict[str, Any] = {
    "unleaded": 136.8,
    "diesel": 145.4,
    "super_unleaded": 150.5,
    "premium_diesel": 162.1,
    "last_updated": utc_now().isoformat(),
    "source": SOURCE_MANUAL,
}

GRADE_FIELDS = {
    "UNLEADED": "unleaded",
    "SUPER_UNLEADED": "super_unleaded",
    "PREMIUM_DIESEL": "premium_diesel",
    "STANDARD_DIESEL": "diesel",
}


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _to_price(value: Any) -> Optional[float]:
    """Parse a price value, or None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if price != price or price in (float("inf"), float("-inf")):
        return None
    return price


def _stations(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("stations"), list):
            return payload["stations"]
        if isinstance(payload.get("data"), list):
            return payload["data"]
        return [payload]
    return []


def _station_price(station: Dict[str, Any], keys: tuple) -> Optional[float]:
    # First key present wins, even when its value is unusable
    for key in keys:
        if key in station:
            return _to_price(station[key])
    return None


def parse_retailer_data(retailer: str, payload: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize one retailer's feed into per-grade mean prices.

    Args:
        retailer: Retailer name (copied into the result)
        payload: Decoded JSON body

    Returns:
        Dict with ``retailer``, ``last_updated`` and any grade that had at
        least one usable value, or None when no grade did

    Examples:
        >>> parse_retailer_data("Asda", {"stations": [{"ULSP": "130.5"}, {"ULSP": 132.5}]})["unleaded"]
        131.5
        >>> parse_retailer_data("Asda", []) is None
        True
    """
    prices: Dict[str, List[float]] = {name: [] for name in PRICE_FIELDS}

    for station in _stations(payload):
        if not isinstance(station, dict):
            continue
        for name, keys in FIELD_KEYS.items():
            price = _station_price(station, keys)
            if price is not None:
                prices[name].append(price)

    result: Dict[str, Any] = {"retailer": retailer}
    for name in PRICE_FIELDS:
        average = _mean(prices[name])
        if average is not None:
            result[name] = average

    if len(result) == 1:
        logger.debug(f"No usable prices in feed from {retailer}")
        return None

    result["last_updated"] = utc_now().isoformat()
    return result


def fetch_retailer_prices(retailer: str, url: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
    """
    Fetch and parse one retailer feed.

    Any failure (timeout, connection, HTTP status, bad JSON) returns None and
    is logged at debug level only.
    """
    if timeout is None:
        timeout = Config.PRICE_FETCH_TIMEOUT_SECONDS

    try:
        response = requests.get(url, headers=REQUEST_HEADERS, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.exceptions.Timeout as e:
        error = StructuredError(ErrorCode.E110_PRICE_FEED_TIMEOUT, f"{retailer} timed out", e, retailer=retailer)
        logger.debug(str(error))
        return None
    except requests.exceptions.HTTPError as e:
        error = StructuredError(ErrorCode.E112_PRICE_FEED_HTTP_ERROR, f"{retailer} returned an error", e,
                                retailer=retailer)
        logger.debug(str(error))
        return None
    except ValueError as e:
        error = StructuredError(ErrorCode.E303_JSON_DECODE_ERROR, f"{retailer} sent invalid JSON", e,
                                retailer=retailer)
        logger.debug(str(error))
        return None
    except requests.exceptions.RequestException as e:
        error = StructuredError(ErrorCode.E111_PRICE_FEED_CONNECTION, f"{retailer} unreachable", e,
                                retailer=retailer)
        logger.debug(str(error))
        return None

    return parse_retailer_data(retailer, payload)


def default_prices() -> Dict[str, Any]:
    return dict(DEFAULT_PRICES)


def _collect(endpoints: Dict[str, str], timeout: float, max_workers: int) -> List[Dict[str, Any]]:
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(fetch_retailer_prices, retailer, url, timeout)
            for retailer, url in endpoints.items()
        ]
        # Leaving the executor waits for every request to settle
    results = []
    for future in futures:
        try:
            prices = future.result()
        except Exception as e:
            logger.debug(f"Retailer fetch failed: {e}")
            continue
        if prices is not None:
            results.append(prices)
    return results


def fetch_averages(
    endpoints: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    max_workers: Optional[int] = None,
) -> Dict[str, Any]:
    """
    UK average fuel prices across retailer feeds.

    Fields with no retailer data fall back to their default. When no retailer
    returns usable data at all the default price set is returned unchanged,
    tagged ``MANUAL``. Never raises.

    Args:
        endpoints: Retailer name -> feed URL (defaults to RETAILER_ENDPOINTS)
        timeout: Per-request timeout in seconds
        max_workers: Parallel request limit

    Returns:
        Dict with the four grade prices, ``last_updated``, ``source`` and,
        for aggregates, the ``retailers`` that contributed
    """
    if endpoints is None:
        endpoints = RETAILER_ENDPOINTS
    if timeout is None:
        timeout = Config.PRICE_FETCH_TIMEOUT_SECONDS
    if max_workers is None:
        max_workers = Config.PRICE_FETCH_MAX_WORKERS

    event = WideEvent("fuel_price_aggregation")
    event.add_context(retailers_requested=len(endpoints), timeout_seconds=timeout)

    try:
        with event.timer("fetch"):
            retailer_prices = _collect(endpoints, timeout, max(1, min(max_workers, len(endpoints) or 1)))

        event.add_business_metric("retailers_responding", len(retailer_prices))

        if not retailer_prices:
            event.add_business_metric("defaults_served", True)
            event.add_structured_error(
                StructuredError(ErrorCode.E113_PRICE_FEED_NO_DATA, "No retailer returned usable prices")
            )
            event.mark_success()
            event.emit(level="warning")
            logger.info("No retailer price data available, serving default prices")
            return default_prices()

        averages: Dict[str, Any] = {}
        for name in PRICE_FIELDS:
            values = [prices[name] for prices in retailer_prices if name in prices]
            average = _mean(values)
            averages[name] = average if average is not None else DEFAULT_PRICES[name]

        averages["last_updated"] = utc_now().isoformat()
        averages["source"] = SOURCE_RETAILER_AVERAGE
        averages["retailers"] = retailer_prices

        event.add_business_metric("average_unleaded", round(averages["unleaded"], 1))
        event.mark_success()
        event.emit()
        return averages

    except Exception as e:
        logger.error(f"Failed to aggregate fuel prices: {e}", exc_info=True)
        event.add_error(e)
        event.add_business_metric("defaults_served", True)
        event.emit(level="error")
        return default_prices()


def retailer_names() -> List[str]:
    return list(RETAILER_ENDPOINTS)


def compare_price(user_price: float, average_price: float) -> Dict[str, Any]:
    """
    Compare a price paid with the average.

    ``difference`` and ``percentage_difference`` are absolute values; the
    direction is in ``is_below_average``.

    Examples:
        >>> compare_price(130.0, 136.8)["is_below_average"]
        True
    """
    difference = user_price - average_price
    percentage = (difference / average_price) * 100 if average_price else 0.0
    return {
        "user_price": user_price,
        "average_price": average_price,
        "difference": round(abs(difference), 2),
        "percentage_difference": round(abs(percentage), 1),
        "is_below_average": difference < 0,
    }


def price_for_grade(prices: Dict[str, Any], fuel_grade: Optional[str]) -> float:
    """Average price for a fuel grade; unknown grades use unleaded."""
    field = GRADE_FIELDS.get((fuel_grade or "").upper(), "unleaded")
    return prices.get(field, DEFAULT_PRICES[field])
