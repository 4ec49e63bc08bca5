import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class WaveSpeedError(RuntimeError):
    pass


class WaveSpeedClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.wavespeed.ai/api/v3",
        poll_interval_sec: float = 2,
        timeout_sec: float = 300,
        request_timeout_sec: float = 30,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise WaveSpeedError("Missing WAVESPEED_API_KEY (set it in .env or environment).")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval_sec = poll_interval_sec
        self.timeout_sec = timeout_sec
        self.request_timeout_sec = request_timeout_sec
        self._sleep = sleep

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _data(self, resp: requests.Response, action: str) -> Dict[str, Any]:
        if resp.status_code != 200:
            raise WaveSpeedError(f"{action} failed: {resp.status_code} {resp.text}")
        try:
            body = resp.json()
        except ValueError as e:
            raise WaveSpeedError(f"{action} returned invalid JSON: {e}") from e
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}

    def submit(self, model_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{model_id}"
        try:
            resp = requests.post(url, headers=self._headers(json_body=True), json=payload, timeout=self.request_timeout_sec)
        except requests.RequestException as e:
            raise WaveSpeedError(f"Submit failed: {e}") from e
        data = self._data(resp, "Submit")
        if not data.get("id"):
            raise WaveSpeedError(f"Submit returned no task id: {data}")
        if isinstance(data.get("urls"), dict):
            data["result_url"] = data["urls"].get("get")
        return data

    def poll_result(self, task_id: str, result_url_hint: Optional[str] = None) -> Dict[str, Any]:
        deadline = time.time() + self.timeout_sec
        url = result_url_hint or f"{self.base_url}/predictions/{task_id}/result"
        while time.time() < deadline:
            try:
                resp = requests.get(url, headers=self._headers(), timeout=self.request_timeout_sec)
            except requests.RequestException as e:
                raise WaveSpeedError(f"Poll failed: {e}") from e
            data = self._data(resp, "Poll")
            status = data.get("status")
            if status == "completed":
                return data
            if status == "failed":
                raise WaveSpeedError(f"Task failed: {data.get('error')}")
            self._sleep(self.poll_interval_sec)
        raise WaveSpeedError(f"Timed out waiting for task {task_id}")

    def run(self, model_id: str, payload: Dict[str, Any]) -> str:
        """Submit a task, wait for it and return its first output URL."""
        task = self.submit(model_id, payload)
        logger.info(f"WaveSpeed task submitted: model={model_id} id={task['id']}")
        result = self.poll_result(task["id"], result_url_hint=task.get("result_url"))
        outputs = result.get("outputs") or []
        if not outputs:
            raise WaveSpeedError(f"Task {task['id']} completed without outputs")
        return outputs[0]
