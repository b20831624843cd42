"""Shared fakes for the test suite."""

from __future__ import annotations

import pathlib
import sys
from typing import Any, Dict, List, Optional

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT / "scripts") not in sys.path:
    sys.path.insert(0, str(ROOT / "scripts"))

from image_gen_api.core.contracts import GenerationOutcome, GenerationRequest  # noqa: E402
from image_gen_api.providers.base import BaseAdapter  # noqa: E402

OPENAI_KEY = "sk-proj-" + "a" * 40
REPLICATE_KEY = "r8_" + "b" * 37


class ScriptedAdapter(BaseAdapter):
    """Adapter that replays a fixed list of outcomes; the last one repeats."""

    provider_id = "openai"
    display_name = "OpenAI"
    models = {"gpt-image-1": "GPT Image 1", "dall-e-3": "DALL-E 3"}
    image_to_image_models = frozenset({"gpt-image-1"})

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        *,
        script: Optional[List[GenerationOutcome]] = None,
        calls: Optional[List[tuple]] = None,
        closed: Optional[List[str]] = None,
    ) -> None:
        self.script = script if script is not None else []
        self.calls = calls if calls is not None else []
        self.closed = closed if closed is not None else []
        # Bound copies share the script and both logs with the template.
        super().__init__(api_key, model, script=self.script, calls=self.calls, closed=self.closed)

    def validate_credential_format(self) -> bool:
        return self.api_key.startswith("sk-")

    def default_model(self, quality: str) -> Optional[str]:
        return "gpt-image-1"

    def _next(self) -> GenerationOutcome:
        if len(self.script) > 1:
            return self.script.pop(0)
        return self.script[0]

    def request(self, request: GenerationRequest) -> GenerationOutcome:
        self.calls.append(("request", request.prompt))
        return self._next()

    def check_pending_status(self, handle: str) -> GenerationOutcome:
        self.calls.append(("poll", handle))
        return self._next()

    def close(self) -> None:
        self.closed.append(self.api_key)


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}
        self.text = text if text is not None else ""

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
