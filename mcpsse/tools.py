"""Built-in tools and resources."""

from __future__ import annotations

import json
import logging
import math
from decimal import Decimal
from typing import Any

from .config import SearchSettings, WeatherSettings
from .exceptions import MissingCredential, NotFound, UpstreamError
from .registry import ResourceRegistry, ToolRegistry
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)


def format_number(value: Any) -> str:
    """Render a number the way JavaScript's ``String()`` does.

    Plain decimals are used for 1e-6 <= |x| < 1e21, exponent notation with an
    unpadded signed exponent otherwise.
    """

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, int) and abs(value) < 10**21:
        return str(value)
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    # repr() yields the shortest digit string that round-trips, as JS does.
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent
    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def register_tools(
    tools: ToolRegistry,
    *,
    upstream: UpstreamClient,
    weather: WeatherSettings,
    search: SearchSettings,
) -> None:
    @tools.tool(name="add", description="Add two numbers together")
    async def add(a: float, b: float) -> str:
        return format_number(a + b)

    @tools.tool(name="weather", description="Get the current weather for a city using Open-Meteo")
    async def get_weather(city: str) -> str:
        try:
            geo = await upstream.get_json(
                weather.geocoding_url,
                params={"name": city, "count": 1},
                service="geocoding",
            )
        except UpstreamError as exc:
            raise type(exc)(message=f"Failed to fetch location for city: {city}", details=exc.details) from exc
        results = (geo or {}).get("results") or []
        if not results:
            raise NotFound(message=f"City not found: {city}", details={"city": city})
        place = results[0]

        try:
            forecast = await upstream.get_json(
                weather.forecast_url,
                params={
                    "latitude": place["latitude"],
                    "longitude": place["longitude"],
                    "current_weather": "true",
                },
                service="weather",
            )
        except UpstreamError as exc:
            raise type(exc)(message=f"Failed to fetch weather for city: {city}", details=exc.details) from exc
        current = (forecast or {}).get("current_weather")
        if not current:
            raise NotFound(message=f"Weather data not available for: {city}", details={"city": city})

        return (
            f"Weather for {place.get('name', city)}, {place.get('country', '')}:\n"
            f"Temperature: {format_number(current.get('temperature'))}°C\n"
            f"Windspeed: {format_number(current.get('windspeed'))} km/h\n"
            f"Weather code: {format_number(current.get('weathercode'))}"
        )

    @tools.tool(name="search", description="Search the web using Brave Search API")
    async def web_search(query: str, count: float = search.default_count) -> str:
        logger.info("search query=%r count=%s", query, format_number(count))
        if not search.api_key:
            raise MissingCredential(message="BRAVE_API_KEY environment variable is not set")
        try:
            data = await upstream.get_json(
                search.url,
                params={"q": query, "count": format_number(count)},
                headers={"X-Subscription-Token": search.api_key, "Accept": "application/json"},
                service="search",
            )
        except UpstreamError as exc:
            raise type(exc)(message=f"Brave search failed: {exc.message}", details=exc.details) from exc
        results = ((data or {}).get("web") or {}).get("results") or []
        return json.dumps(results, indent=2, ensure_ascii=False)


def register_resources(resources: ResourceRegistry) -> None:
    @resources.resource("greeting://{name}", name="greeting", description="A personalised greeting")
    async def greeting(name: str) -> str:
        return f"Hello, {name}!"
