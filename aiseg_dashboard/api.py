"""Transport and parsing helpers for the AiSEG2 appliance.

This module provides the HTTP Digest transport used for every request to
the appliance, plus the pure functions that turn its HTML/JSON hybrid
responses into dashboard payloads.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import quote
from urllib.request import parse_http_list

import httpx
from httpx_retries import Retry, RetryTransport

from .const import (
    AC_FAN_ITEM_ID,
    CIRCUIT_ENABLED_BUTTON_TYPE,
    CIRCUIT_LIST_MARKER,
    DEFAULT_BATH_BUTTON,
    DEFAULT_REALM,
    DEFAULT_TIMEOUT,
    EMPTY_LABEL,
    FH_LEVEL_MAX,
    FH_LEVEL_MIN,
    STATE_RUNNING,
)
from .models import Circuit

if TYPE_CHECKING:
    from collections.abc import Generator, Iterator

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_UNAUTHORIZED = 401

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
XHR_HEADERS = {**FORM_HEADERS, "X-Requested-With": "XMLHttpRequest"}

_KWH_RE = re.compile(r'<span[^>]+id="val_kwh"[^>]*>([\d.,]+)</span>')
_SCRIPT_RE = re.compile(r"<script[^>]*>([\s\S]*?)</script>")
_OBJECT_CALL_RE = re.compile(r"\(\s*\{")
_TOKEN_RE = re.compile(r"init\s*\(\s*\d+\s*,\s*\d+\s*,\s*\d+\s*,\s*(\d+)")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)


class AisegApiClientError(Exception):
    """Base exception for AiSEG2 client errors."""


class AisegApiAuthError(AisegApiClientError):
    """Exception raised when the appliance rejects the digest credentials."""


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error.

    Args:
        status: HTTP status code to check.

    Returns:
        True if status code is 401, False otherwise.

    """
    return status == HTTP_UNAUTHORIZED


def validate_response(response: httpx.Response) -> httpx.Response:
    """Raise for a non-successful response and return it otherwise.

    Raises:
        AisegApiAuthError: If the response is still 401 after the digest retry.
        AisegApiClientError: For any other non-2xx status.

    """
    if response.is_success:
        return response

    if is_auth_error(response.status_code):
        auth_error = "AiSEG2 authentication failed"
        raise AisegApiAuthError(auth_error)

    client_error = f"AiSEG2 HTTP {response.status_code}"
    raise AisegApiClientError(client_error)


class AisegDigestAuth(httpx.DigestAuth):
    """HTTP Digest auth tuned to the AiSEG2 challenge.

    The appliance may omit the realm or the nonce from its challenge; they
    default to "AiSEG" and an empty string. Every request starts without
    credentials and answers a challenge at most once, so the nonce count
    sent is always 00000001. A second 401 is returned to the caller as-is.
    """

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        """Send the request bare and answer one Digest challenge."""
        self._last_challenge = None
        yield from super().auth_flow(request)

    def _parse_challenge(
        self, request: httpx.Request, response: httpx.Response, auth_header: str
    ) -> Any:
        scheme, _, fields = auth_header.partition(" ")
        items = [item.strip() for item in parse_http_list(fields) if item.strip()]
        present = {item.split("=", 1)[0] for item in items}
        if "realm" not in present:
            items.append(f'realm="{DEFAULT_REALM}"')
        if "nonce" not in present:
            items.append('nonce=""')
        _LOGGER.debug(
            "Answering digest challenge for %s %s", request.method, request.url.path
        )
        return super()._parse_challenge(
            request, response, f"{scheme} {', '.join(items)}"
        )


def form_body(params: dict[str, Any]) -> str:
    """Encode params as the data=<json> form body of device endpoints."""
    encoded = json.dumps(params, ensure_ascii=False, separators=(",", ":"))
    return "data=" + quote(encoded, safe="!'()*")


def create_session_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the appliance.

    Args:
        timeout: Per-request timeout in seconds.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    retry = Retry(total=3, backoff_factor=0.5)
    transport = RetryTransport(transport=httpx.AsyncHTTPTransport(), retry=retry)
    return httpx.AsyncClient(transport=transport, timeout=timeout)


def parse_locale_decimal(text: str) -> float | None:
    """Parse a decimal with comma group separators ("1,234.56" -> 1234.56)."""
    try:
        return float(text.replace(",", ""))
    except (AttributeError, ValueError):
        return None


def parse_kwh(html: str) -> float | None:
    """Extract the kWh value shown in the val_kwh span of a graph page."""
    match = _KWH_RE.search(html or "")
    if match is None:
        return None
    return parse_locale_decimal(match.group(1))


def _balanced_argument(script: str, start: int) -> str | None:
    """Return the text between script[start] == "(" and its matching ")".

    Parentheses inside JSON string literals are not counted.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(script)):
        char = script[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return script[start + 1 : index].strip()
    return None


def _call_arguments(script: str) -> Iterator[str]:
    """Yield every object-literal call argument in a script, in order."""
    for match in _OBJECT_CALL_RE.finditer(script):
        argument = _balanced_argument(script, match.start())
        if argument:
            yield argument


def _parse_circuit_script(script: str) -> list[Circuit] | None:
    for argument in _call_arguments(script):
        if CIRCUIT_LIST_MARKER not in argument:
            continue
        try:
            data = json.loads(argument)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue

        entries = data.get(CIRCUIT_LIST_MARKER) or []
        return [
            Circuit(
                id=str(entry.get("strId")),
                name=entry.get("strCircuit") or f"Circuit {entry.get('strId')}",
            )
            for entry in entries
            if isinstance(entry, dict)
            and entry.get("strBtnType") == CIRCUIT_ENABLED_BUTTON_TYPE
        ]
    return None


def parse_circuit_list(html: str) -> list[Circuit]:
    """Extract the enabled circuits from the circuit settings page.

    The page embeds a call whose argument is a JSON literal holding
    arrayCircuitNameList. Script blocks carrying the marker are tried in
    order; a block whose argument does not parse is skipped. Returns an
    empty list when no block parses.
    """
    for script in _SCRIPT_RE.findall(html or ""):
        if CIRCUIT_LIST_MARKER not in script:
            continue
        circuits = _parse_circuit_script(script)
        if circuits is not None:
            return circuits
        _LOGGER.debug("Skipping unparseable circuit script block")
    return []


def encode_circuit_query(circuit_id: str) -> str:
    """Encode a circuit id as the base64 JSON data query parameter."""
    payload = json.dumps({"circuitid": str(circuit_id)}, separators=(",", ":"))
    return base64.b64encode(payload.encode()).decode()


def extract_session_token(html: str) -> str | None:
    """Extract the session token from the init() call of the device page."""
    match = _TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def encode_floor_heater_level(level: Any) -> str:
    """Clamp a floor heater level into 1..9 and encode it (0x31..0x39)."""
    try:
        numeric = int(float(level))
    except (TypeError, ValueError):
        numeric = FH_LEVEL_MIN
    clamped = max(FH_LEVEL_MIN, min(FH_LEVEL_MAX, numeric))
    return f"0x3{clamped}"


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _placeholder_to_none(value: Any) -> Any:
    """Return None for missing values and the appliance's "-" placeholder."""
    if value in (None, "", "-"):
        return None
    return value


def parse_realtime(data: dict[str, Any]) -> dict[str, Any]:
    """Map the electricflow JSON onto the realtime payload.

    Numeric fields default to 0 so downstream arithmetic never sees None.
    """
    top = [
        {
            "name": data.get(f"u_d_{rank}_title"),
            "watts": _to_float(data.get(f"u_d_{rank}_capacity")),
            "visible": data.get(f"best{rank}") == 1,
        }
        for rank in (1, 2, 3)
    ]
    return {
        "gen_kw": _to_float(data.get("g_capacity")),
        "use_kw": _to_float(data.get("u_capacity")),
        "solar_w": _to_float(data.get("g_d_1_capacity")),
        "enefarm_w": _to_float(data.get("g_d_2_capacity")),
        "selling": data.get("lo_buy_sell") == 1,
        "top": [entry for entry in top if entry["visible"]],
        "ev_connected": data.get("connEv") == 1,
        "battery_pct": data.get("percent") if data.get("connSb") else None,
        "fc_connected": _to_float(data.get("connFc")) > 0,
        "raw": data,
    }


def _parse_hex_int(value: Any) -> int | None:
    if not value:
        return None
    try:
        return int(str(value), 16)
    except ValueError:
        return None


def parse_ac_status(link: dict[str, Any], detail: dict[str, Any]) -> dict[str, Any]:
    """Merge an AC group entry with its detail response."""
    fan_item = next(
        (
            item
            for item in detail.get("modify_items") or []
            if item.get("id_str") == AC_FAN_ITEM_ID
        ),
        {},
    )
    return {
        "nodeId": link.get("nodeId"),
        "eoj": link.get("eoj"),
        "type": link.get("type"),
        "name": link.get("name"),
        "state": link.get("state"),
        "running": link.get("state") == STATE_RUNNING,
        "stateLabel": link.get("state_str"),
        "buttonLabel": link.get("index_mode_button"),
        "inner": link.get("inner") or None,
        "outer": _placeholder_to_none(link.get("outer")),
        "humidity": _placeholder_to_none(link.get("humidity")),
        "mode": detail.get("mode") or None,
        "tempC": _parse_hex_int(detail.get("temp")),
        "fan": (fan_item.get("current") or {}).get("value") or None,
    }


def parse_floor_heater_status(link: dict[str, Any]) -> dict[str, Any]:
    """Map a floor heater group entry."""
    return {
        "nodeId": link.get("nodeId"),
        "eoj": link.get("eoj"),
        "type": link.get("type"),
        "name": link.get("name"),
        "state": link.get("state"),
        "running": link.get("state") == STATE_RUNNING,
        "stateLabel": link.get("state_str"),
        "buttonLabel": link.get("index_mode_button"),
        "templevel": link.get("templevel") or None,
    }


def parse_enefarm_status(group: dict[str, Any]) -> dict[str, Any]:
    """Map the lanEnefarm block of the combined group listing."""
    enefarm = (group.get("list2") or {}).get("lanEnefarm") or {}
    return {
        "bathRunning": enefarm.get("bath_onoff") == "on",
        "bathLabel": enefarm.get("bath_state") or EMPTY_LABEL,
        "bathButton": enefarm.get("bath_button") or DEFAULT_BATH_BUTTON,
        "generateRunning": enefarm.get("generate_onoff") == "on",
        "generateLabel": enefarm.get("generate_state") or EMPTY_LABEL,
        "generateButton": _BR_RE.sub(" ", enefarm.get("generate_button") or ""),
    }


def error_result(response: httpx.Response) -> dict[str, Any]:
    """Return the uniform result of a failed control request."""
    return {"result": "error", "status": response.status_code}
