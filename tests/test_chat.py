"""
Tests for the AI chat relay.
"""

from types import SimpleNamespace

import groq
import httpx

from app.clients import GroqClient
from app.config import settings
from app.routes import chat as chat_routes
from app.services.chat import DEFAULT_IMAGE_PROMPT, FALLBACK_REPLY, SYSTEM_PROMPT, ChatService


class FakeGroq:
    """Records calls the way GroqClient.chat would receive them."""

    def __init__(self, reply: str | None = "Photosynthesis makes sugar.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.model = settings.default_model
        self.calls: list[dict] = []

    def with_model(self, model_name: str) -> "FakeGroq":
        self.model = model_name
        return self

    async def chat(self, messages, **kwargs):
        self.calls.append({"messages": messages, "model": self.model, **kwargs})
        if self.error:
            raise self.error
        return self.reply


class TestChatService:
    """Message building and model selection."""

    def test_select_model(self):
        assert ChatService.select_model("https://img.test/a.png") == settings.vision_model
        assert ChatService.select_model(None) == settings.default_model

    def test_build_messages_without_image(self):
        messages = ChatService.build_messages(
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        )

        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert messages[1:] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_image_attaches_to_last_user_message(self):
        messages = ChatService.build_messages(
            [{"role": "user", "content": "first"}, {"role": "user", "content": None}],
            "https://img.test/a.png",
        )

        assert messages[1] == {"role": "user", "content": "first"}
        assert messages[2]["content"] == [
            {"type": "text", "text": DEFAULT_IMAGE_PROMPT},
            {"type": "image_url", "image_url": {"url": "https://img.test/a.png"}},
        ]

    async def test_reply_uses_vision_model_with_image(self):
        fake = FakeGroq()

        await ChatService(fake).reply([{"role": "user", "content": "what?"}], "https://img.test/a.png")

        assert fake.calls[0]["model"] == settings.vision_model
        assert fake.calls[0]["max_tokens"] == settings.chat_max_tokens

    async def test_reply_uses_default_model_without_image(self):
        fake = FakeGroq()

        await ChatService(fake).reply([{"role": "user", "content": "what?"}])

        assert fake.calls[0]["model"] == settings.default_model

    async def test_missing_content_falls_back(self):
        reply = await ChatService(FakeGroq(reply=None)).reply([{"role": "user", "content": "x"}])

        assert reply == FALLBACK_REPLY


class TestChatRoute:
    """Tests for POST /api/ai-chat."""

    def _use(self, monkeypatch, fake: FakeGroq) -> None:
        monkeypatch.setattr(chat_routes, "get_chat_service", lambda: ChatService(fake))

    def test_success(self, client, student_headers, monkeypatch):
        self._use(monkeypatch, FakeGroq())

        resp = client.post(
            "/api/ai-chat",
            json={"messages": [{"role": "user", "content": "Explain photosynthesis"}]},
            headers=student_headers,
        )

        assert resp.status_code == 200
        assert resp.json() == {"message": "Photosynthesis makes sugar."}

    def test_empty_reply_uses_fallback_text(self, client, student_headers, monkeypatch):
        self._use(monkeypatch, FakeGroq(reply=""))

        resp = client.post(
            "/api/ai-chat", json={"messages": [{"role": "user", "content": "?"}]}, headers=student_headers
        )

        assert resp.json() == {"message": FALLBACK_REPLY}

    def test_missing_api_key(self, client, student_headers, monkeypatch):
        monkeypatch.setattr(settings, "groq_api_key", "")

        resp = client.post("/api/ai-chat", json={"messages": []}, headers=student_headers)

        assert resp.status_code == 500
        assert resp.json() == {"error": "AI service not configured"}

    def test_upstream_failure(self, client, student_headers, monkeypatch):
        response = httpx.Response(
            502, text="bad gateway", request=httpx.Request("POST", "https://api.groq.com/")
        )
        self._use(monkeypatch, FakeGroq(error=groq.APIStatusError("upstream", response=response, body=None)))

        resp = client.post(
            "/api/ai-chat", json={"messages": [{"role": "user", "content": "?"}]}, headers=student_headers
        )

        assert resp.status_code == 500
        assert resp.json() == {"error": "AI service error"}

    def test_unexpected_failure(self, client, student_headers, monkeypatch):
        self._use(monkeypatch, FakeGroq(error=RuntimeError("boom")))

        resp = client.post(
            "/api/ai-chat", json={"messages": [{"role": "user", "content": "?"}]}, headers=student_headers
        )

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process request"}


class FakeCompletions:
    def __init__(self, choices: list) -> None:
        self.choices = choices
        self.params: list[dict] = []

    async def create(self, **params):
        self.params.append(params)
        return SimpleNamespace(choices=self.choices)


def _groq_with(choices: list) -> tuple[GroqClient, FakeCompletions]:
    groq_client = GroqClient(api_key="gsk_test")
    completions = FakeCompletions(choices)
    groq_client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return groq_client, completions


class TestGroqClient:
    """GroqClient against a stubbed SDK client."""

    async def test_with_model_shares_connection_and_switches_model(self):
        groq_client, completions = _groq_with(
            [SimpleNamespace(message=SimpleNamespace(content="hi"))]
        )

        vision = groq_client.with_model(settings.vision_model)
        text = await vision.chat([{"role": "user", "content": "?"}], max_tokens=10)

        assert text == "hi"
        assert vision._client is groq_client._client
        assert completions.params == [
            {
                "model": settings.vision_model,
                "messages": [{"role": "user", "content": "?"}],
                "max_tokens": 10,
            }
        ]

    async def test_no_choices_returns_none(self):
        groq_client, completions = _groq_with([])

        assert await groq_client.chat([]) is None
        assert completions.params[0]["model"] == settings.default_model
