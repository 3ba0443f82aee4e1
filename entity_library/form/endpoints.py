"""
Option endpoint resolution and response parsing for dependent selects.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import quote

import requests

from ..config_proxy import settings_proxy
from ..errors import OptionFetchError
from .conditional import is_empty, resolve_value
from .fields import Option, OptionEndpoint

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_.]*)\}")
ID_SUFFIX_RE = re.compile(r"(_id|Id|ID)$")
CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

CONTENT_KEYS = ("content", "data", "items", "results")
LABEL_FALLBACK_KEYS = ("name", "label")
VALUE_FALLBACK_KEYS = ("id", "value")


def pluralize(word: str) -> str:
    if not word:
        return word
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def resource_name(field_name: str) -> str:
    """``deliveryPointId`` / ``delivery_point_id`` -> ``delivery-points``."""
    base = ID_SUFFIX_RE.sub("", field_name) or field_name
    base = CAMEL_BOUNDARY_RE.sub("-", base).replace("_", "-").lower().strip("-")
    return pluralize(base)


def convention_url(field_name: str, prefix: Optional[str] = None) -> str:
    if prefix is None:
        prefix = settings_proxy.get("dependent_field_settings.option_endpoint_prefix", "/api")
    return f"{prefix.rstrip('/')}/{resource_name(field_name)}"


def fill_template(template: str, params: Mapping[str, Any]) -> tuple[str, set[str]]:
    """
    Substitute ``{name}`` placeholders with URL-encoded values.

    Returns the URL and the set of parameter names consumed by the template.
    Placeholders without a value are left untouched.
    """
    used: set[str] = set()

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        value = resolve_value(params, name)
        if is_empty(value):
            return match.group(0)
        used.add(name)
        return quote(str(value), safe="")

    return PLACEHOLDER_RE.sub(_replace, template), used


def resolve_request(
    field_name: str,
    endpoint: Optional[OptionEndpoint],
    dependency_values: Mapping[str, Any],
    *,
    endpoint_map: Optional[Mapping[str, str]] = None,
    prefix: Optional[str] = None,
) -> tuple[str, dict[str, Any]]:
    """
    Resolve the URL and query params for a dependent field's option request.

    Resolution order: explicit URL template, named entry in ``endpoint_map``,
    then the convention derived from the field name.
    """
    endpoint = endpoint or OptionEndpoint()
    params: dict[str, Any] = {}
    for name, value in dependency_values.items():
        if is_empty(value):
            continue
        params[endpoint.param_names.get(name, name)] = value

    if endpoint.url:
        template = endpoint.url
    elif endpoint.endpoint_name and endpoint_map and endpoint.endpoint_name in endpoint_map:
        template = endpoint_map[endpoint.endpoint_name]
    else:
        if endpoint.endpoint_name:
            logger.debug(
                "Endpoint %s not in endpoint map, using convention for %s",
                endpoint.endpoint_name,
                field_name,
            )
        template = convention_url(field_name, prefix)

    url, used = fill_template(template, params)
    query = {name: value for name, value in params.items() if name not in used}
    query.update(endpoint.static_params)
    return url, query


def extract_items(payload: Any, content_path: Optional[str] = None) -> list[Any]:
    """Find the list of records inside an option response."""
    if content_path:
        found = resolve_value(payload, content_path) if isinstance(payload, Mapping) else None
        return list(found) if isinstance(found, (list, tuple)) else []
    if isinstance(payload, (list, tuple)):
        return list(payload)
    if not isinstance(payload, Mapping):
        return []
    for key in CONTENT_KEYS:
        value = payload.get(key)
        if isinstance(value, (list, tuple)):
            return list(value)
    page = payload.get("page")
    if isinstance(page, Mapping) and isinstance(page.get("content"), (list, tuple)):
        return list(page["content"])
    return []


def _first_present(item: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = resolve_value(item, key)
        if not is_empty(value):
            return value
    return None


def parse_options(
    payload: Any,
    *,
    label_key: Optional[str] = None,
    value_key: Optional[str] = None,
    content_path: Optional[str] = None,
) -> list[Option]:
    label_key = label_key or settings_proxy.get(
        "dependent_field_settings.option_label_key", "name"
    )
    value_key = value_key or settings_proxy.get(
        "dependent_field_settings.option_value_key", "id"
    )

    options: list[Option] = []
    for item in extract_items(payload, content_path):
        if isinstance(item, Option):
            options.append(item)
            continue
        if not isinstance(item, Mapping):
            if is_empty(item):
                continue
            options.append(Option(label=str(item), value=str(item), data=item))
            continue
        value = _first_present(item, (value_key, *VALUE_FALLBACK_KEYS))
        if is_empty(value):
            continue
        label = _first_present(item, (label_key, *LABEL_FALLBACK_KEYS))
        options.append(
            Option(
                label=str(label) if not is_empty(label) else str(value),
                value=str(value),
                data=item,
            )
        )
    return options


def coerce_options(items: Iterable[Any], endpoint: Optional[OptionEndpoint] = None) -> list[Option]:
    """Normalize whatever a custom fetcher returned into ``Option`` objects."""
    endpoint = endpoint or OptionEndpoint()
    return parse_options(
        items,
        label_key=endpoint.label_key,
        value_key=endpoint.value_key,
        content_path=endpoint.content_path,
    )


class RequestsOptionFetcher:
    """
    HTTP option loader backed by ``requests``.

    The blocking call runs in a worker thread so the event loop keeps
    servicing other fields while a request is in flight.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.headers = dict(headers or {})
        self.timeout = timeout

    def _timeout(self) -> float:
        if self.timeout is not None:
            return self.timeout
        return float(settings_proxy.get("dependent_field_settings.http_timeout_seconds", 10))

    def _get(self, url: str, params: Mapping[str, Any]) -> Any:
        full_url = url if url.startswith(("http://", "https://")) else f"{self.base_url}{url}"
        try:
            response = self.session.get(
                full_url,
                params=dict(params),
                headers=self.headers,
                timeout=self._timeout(),
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise OptionFetchError(
                f"Failed to load options from {full_url}",
                details={"url": full_url, "error": str(exc)},
            ) from exc
        except ValueError as exc:
            raise OptionFetchError(
                f"Invalid JSON in option response from {full_url}",
                details={"url": full_url},
            ) from exc

    async def fetch(self, url: str, params: Mapping[str, Any]) -> Any:
        return await asyncio.to_thread(self._get, url, params)

    def close(self) -> None:
        self.session.close()
