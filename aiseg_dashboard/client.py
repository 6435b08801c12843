"""AiSEG2 appliance client.

Domain operations built on the digest transport: power flow, daily totals,
circuit metering, device status aggregation and device control.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from . import api
from .const import (
    AC_DEVICE_TYPE,
    AC_DEVICES,
    ALL_DEVICES,
    CIRCUIT_KWH_CONCURRENCY,
    DEFAULT_SESSION_TOKEN,
    ENEFARM,
    FH_DEVICE_TYPE,
    FH_DEVICES,
    PATH_AC_CHANGE,
    PATH_AC_DETAIL,
    PATH_AC_GROUP,
    PATH_AC_SETTING,
    PATH_ALL_GROUP,
    PATH_BATH_TOGGLE,
    PATH_CIRCUIT_KWH,
    PATH_CIRCUIT_LIST,
    PATH_DEVICE_PAGE,
    PATH_FH_CHANGE,
    PATH_FH_GROUP,
    PATH_GENERATE_TOGGLE,
    PATH_GRAPH_PAGE,
    PATH_REALTIME,
    TOKEN_MAX_AGE,
    TOTALS_PAGES,
)
from .models import (
    ACSetting,
    ControlAction,
    ControlCommand,
    SessionToken,
    UnknownControlActionError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .models import Circuit, DeviceDescriptor

_LOGGER = logging.getLogger(__name__)


class AisegClient:
    """Client for one AiSEG2 appliance.

    The client owns the session token. All other state lives with the caller.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        base_url: str,
        username: str,
        password: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            session: Shared HTTP client session.
            base_url: Appliance base URL, e.g. "http://192.168.0.216".
            username: Digest user name.
            password: Digest password.
            clock: Time source in seconds, used for token freshness.

        """
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._auth = api.AisegDigestAuth(username, password)
        self._clock = clock
        self._token: SessionToken | None = None

    @property
    def token(self) -> SessionToken | None:
        """Return the cached session token, if any."""
        return self._token

    async def async_request(
        self,
        path: str,
        method: str = "GET",
        content: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a digest-authenticated request to the appliance.

        A response still rejected after the Digest answer is returned as-is;
        callers inspect the status.

        Raises:
            httpx.HTTPError: On network failure.

        """
        return await self._session.request(
            method,
            f"{self._base_url}{path}",
            content=content,
            headers=headers,
            auth=self._auth,
        )

    async def _async_device_post(
        self, path: str, params: dict[str, Any]
    ) -> httpx.Response:
        return await self.async_request(
            path, "POST", content=api.form_body(params), headers=api.XHR_HEADERS
        )

    async def _async_get_text(self, path: str) -> str:
        response = await self.async_request(path)
        return response.text

    async def async_get_token(self) -> str:
        """Return the session token, refetching it when stale or absent."""
        now = self._clock()
        if self._token is not None and self._token.is_fresh(now, TOKEN_MAX_AGE):
            return self._token.value

        _LOGGER.debug("Fetching session token")
        html = await self._async_get_text(PATH_DEVICE_PAGE)
        value = api.extract_session_token(html)
        if value is None:
            _LOGGER.warning(
                "Session token not found on device page, using default %s",
                DEFAULT_SESSION_TOKEN,
            )
            value = DEFAULT_SESSION_TOKEN
        self._token = SessionToken(value=value, fetched_at=self._clock())
        return value

    async def async_get_realtime(self) -> dict[str, Any]:
        """Fetch the live power flow.

        Raises:
            AisegApiClientError: If the request fails or is rejected.

        """
        try:
            response = await self.async_request(
                PATH_REALTIME, "POST", content="", headers=api.FORM_HEADERS
            )
        except httpx.HTTPError as err:
            error_msg = f"Connection error while fetching realtime data: {err}"
            raise api.AisegApiClientError(error_msg) from err

        api.validate_response(response)
        try:
            data = response.json()
        except ValueError as err:
            error_msg = f"Malformed realtime response: {err}"
            raise api.AisegApiClientError(error_msg) from err
        return api.parse_realtime(data)

    async def _async_get_total(self, key: str, page_id: int) -> float | None:
        try:
            html = await self._async_get_text(
                PATH_GRAPH_PAGE.format(page_id=page_id)
            )
        except httpx.HTTPError as err:
            _LOGGER.warning("Totals scrape for %s failed: %s", key, err)
            return None

        value = api.parse_kwh(html)
        if value is None:
            _LOGGER.warning("Totals page for %s did not contain a kWh value", key)
        return value

    async def async_get_totals(self) -> dict[str, float | None]:
        """Scrape today's solar, consumption, purchase and sold kWh.

        The four pages are fetched concurrently; a failing page yields None
        for its own key only.
        """
        keys = list(TOTALS_PAGES)
        values = await asyncio.gather(
            *(self._async_get_total(key, TOTALS_PAGES[key]) for key in keys)
        )
        return dict(zip(keys, values, strict=True))

    async def async_get_circuits(self) -> list[Circuit]:
        """Fetch the enabled circuits (id and name).

        Raises:
            AisegApiClientError: If the settings page cannot be fetched.

        """
        try:
            html = await self._async_get_text(PATH_CIRCUIT_LIST)
        except httpx.HTTPError as err:
            error_msg = f"Connection error while fetching circuits: {err}"
            raise api.AisegApiClientError(error_msg) from err

        circuits = api.parse_circuit_list(html)
        _LOGGER.debug("Retrieved %d circuits", len(circuits))
        return circuits

    async def async_get_circuit_kwh(self, circuit_id: str) -> float | None:
        """Fetch today's kWh for one circuit."""
        path = PATH_CIRCUIT_KWH.format(data=api.encode_circuit_query(circuit_id))
        return api.parse_kwh(await self._async_get_text(path))

    async def _async_get_circuit_kwh_or_none(self, circuit_id: str) -> float | None:
        try:
            return await self.async_get_circuit_kwh(circuit_id)
        except httpx.HTTPError as err:
            _LOGGER.debug("kWh fetch for circuit %s failed: %s", circuit_id, err)
            return None

    async def async_get_all_circuit_kwh(
        self, circuits: Sequence[Circuit]
    ) -> list[float | None]:
        """Fetch kWh for every circuit, at most ten requests at a time.

        Each batch is fully drained before the next one starts. Results keep
        the order of circuits; failures yield None.
        """
        results: list[float | None] = []
        for start in range(0, len(circuits), CIRCUIT_KWH_CONCURRENCY):
            batch = circuits[start : start + CIRCUIT_KWH_CONCURRENCY]
            results.extend(
                await asyncio.gather(
                    *(self._async_get_circuit_kwh_or_none(c.id) for c in batch)
                )
            )
        return results

    async def _async_get_group(
        self, path: str, devices: Sequence[DeviceDescriptor], token: str
    ) -> dict[str, Any]:
        response = await self._async_device_post(
            path,
            {
                "list": [device.as_payload() for device in devices],
                "page": 1,
                "old_page": 0,
                "token": token,
            },
        )
        if not response.is_success:
            _LOGGER.warning(
                "Group listing %s failed with HTTP %s", path, response.status_code
            )
            return {}
        return response.json()

    async def _async_get_ac_detail(self, device: DeviceDescriptor) -> dict[str, Any]:
        try:
            response = await self._async_device_post(
                PATH_AC_DETAIL,
                {
                    "nodeId": device.node_id,
                    "eoj": device.eoj,
                    "type": AC_DEVICE_TYPE,
                    "page": 1,
                    "individual_page": 1,
                },
            )
            if not response.is_success:
                return {}
            return response.json()
        except (httpx.HTTPError, ValueError) as err:
            _LOGGER.debug("AC detail for %s failed: %s", device.key, err)
            return {}

    async def async_get_devices(self) -> dict[str, Any]:
        """Fetch the status of every controllable device.

        Raises:
            AisegApiClientError: If a group listing cannot be fetched.

        """
        try:
            token = await self.async_get_token()
            ac_group, fh_group, all_group = await asyncio.gather(
                self._async_get_group(PATH_AC_GROUP, AC_DEVICES, token),
                self._async_get_group(PATH_FH_GROUP, FH_DEVICES, token),
                self._async_get_group(PATH_ALL_GROUP, ALL_DEVICES, token),
            )
        except (httpx.HTTPError, ValueError) as err:
            error_msg = f"Connection error while fetching devices: {err}"
            raise api.AisegApiClientError(error_msg) from err

        details = await asyncio.gather(
            *(self._async_get_ac_detail(device) for device in AC_DEVICES)
        )

        links = ac_group.get("links") or []
        acs = [
            api.parse_ac_status(link, details[index] if index < len(details) else {})
            for index, link in enumerate(links)
        ]
        fhs = [
            api.parse_floor_heater_status(link)
            for link in fh_group.get("links") or []
        ]
        return {
            "token": token,
            "acs": acs,
            "fhs": fhs,
            "enefarm": api.parse_enefarm_status(all_group),
        }

    @staticmethod
    def _control_result(response: httpx.Response) -> dict[str, Any]:
        if not response.is_success:
            return api.error_result(response)
        try:
            return response.json()
        except ValueError:
            _LOGGER.warning("Control response was not JSON: %s", response.text[:200])
            return api.error_result(response)

    async def async_toggle_ac(
        self, node_id: str, eoj: str, state: str
    ) -> dict[str, Any]:
        """Toggle an air conditioner by echoing its current state."""
        token = await self.async_get_token()
        response = await self._async_device_post(
            PATH_AC_CHANGE,
            {
                "nodeId": node_id,
                "eoj": eoj,
                "type": AC_DEVICE_TYPE,
                "state": state,
                "token": token,
            },
        )
        return self._control_result(response)

    async def async_toggle_floor_heater(
        self, node_id: str, eoj: str, state: str
    ) -> dict[str, Any]:
        """Toggle a floor heater by echoing its current state."""
        token = await self.async_get_token()
        response = await self._async_device_post(
            PATH_FH_CHANGE,
            {
                "nodeId": node_id,
                "eoj": eoj,
                "type": FH_DEVICE_TYPE,
                "state": state,
                "token": token,
            },
        )
        return self._control_result(response)

    async def async_set_ac_setting(
        self, node_id: str, eoj: str, setting: ACSetting, value: Any
    ) -> dict[str, Any]:
        """Change AC mode, target temperature or fan speed.

        Args:
            node_id: AC node id.
            eoj: AC endpoint object id.
            setting: Which setting to change.
            value: Hex code for mode and fan (e.g. "0x43"), integer °C for
                temperature.

        """
        token = await self.async_get_token()
        response = await self._async_device_post(
            PATH_AC_SETTING,
            {
                "nodeId": node_id,
                "eoj": eoj,
                "type": AC_DEVICE_TYPE,
                "page": "1",
                "individual_page": "1",
                "setting_type": str(int(setting)),
                "value": str(value),
                "token": token,
            },
        )
        return self._control_result(response)

    async def async_set_floor_heater_level(
        self, node_id: str, eoj: str, state: str, level: Any
    ) -> dict[str, Any]:
        """Set a floor heater level, clamped into 1..9."""
        token = await self.async_get_token()
        response = await self._async_device_post(
            PATH_FH_CHANGE,
            {
                "nodeId": node_id,
                "eoj": eoj,
                "type": FH_DEVICE_TYPE,
                "state": state,
                "templevel": api.encode_floor_heater_level(level),
                "token": token,
            },
        )
        return self._control_result(response)

    async def async_toggle_bath(self) -> dict[str, Any]:
        """Toggle automatic bath filling on the Enefarm unit."""
        token = await self.async_get_token()
        query = urlencode(
            {
                "page": "1",
                "old_page": "1",
                "nodeid": ENEFARM.bath.node_id,
                "eoj": ENEFARM.bath.eoj,
                "devtype": ENEFARM.bath.device_type,
                "bathcmd": ENEFARM.bath_command,
                "generatecmd": "-",
                "geneHeatcmd": "-",
                "cleancmd": "-",
                "token": token,
            }
        )
        response = await self.async_request(f"{PATH_BATH_TOGGLE}?{query}")
        return self._control_result(response)

    async def async_toggle_generate(self) -> dict[str, Any]:
        """Toggle Enefarm power generation."""
        token = await self.async_get_token()
        response = await self._async_device_post(
            PATH_GENERATE_TOGGLE,
            {"token": token, "generatecmd": ENEFARM.generate_command},
        )
        return self._control_result(response)

    async def async_execute(self, command: ControlCommand) -> dict[str, Any]:
        """Run a control command against exactly one appliance operation."""
        action = command.action
        _LOGGER.debug("Executing %s for %s_%s", action, command.node_id, command.eoj)

        if action is ControlAction.TOGGLE_AC:
            return await self.async_toggle_ac(
                command.node_id, command.eoj, command.state
            )
        if action is ControlAction.TOGGLE_FH:
            return await self.async_toggle_floor_heater(
                command.node_id, command.eoj, command.state
            )
        if action is ControlAction.TOGGLE_BATH:
            return await self.async_toggle_bath()
        if action is ControlAction.TOGGLE_GENERATE:
            return await self.async_toggle_generate()
        if action is ControlAction.SET_AC_MODE:
            return await self.async_set_ac_setting(
                command.node_id, command.eoj, ACSetting.MODE, command.value
            )
        if action is ControlAction.SET_AC_TEMP:
            return await self.async_set_ac_setting(
                command.node_id, command.eoj, ACSetting.TEMPERATURE, command.value
            )
        if action is ControlAction.SET_AC_FAN:
            return await self.async_set_ac_setting(
                command.node_id, command.eoj, ACSetting.FAN, command.value
            )
        if action is ControlAction.SET_FH_LEVEL:
            return await self.async_set_floor_heater_level(
                command.node_id, command.eoj, command.state, command.value
            )

        error_msg = f"unknown action: {action!r}"
        raise UnknownControlActionError(error_msg)
