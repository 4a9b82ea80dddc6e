from app.clients import GroqClient
from app.config import settings

FALLBACK_REPLY = "Sorry, I could not generate a response."
DEFAULT_IMAGE_PROMPT = "What do you see in this image? Help me understand it."

SYSTEM_PROMPT = """You are a helpful AI study assistant for students. You help with:
- Explaining concepts in simple terms
- Solving problems step by step
- Providing study tips and strategies
- Answering questions about subjects like Physics, Chemistry, Math, Biology
- Motivating students and keeping them focused

Be friendly, encouraging, and explain things clearly. Use examples when helpful.
If you're shown an image, analyze it and help with any questions, problems, or content shown.
Keep responses concise but thorough. Use Hindi-English mix if the student asks in Hindi."""


class ChatService:
    """Relay a study conversation to the chat-completion API."""

    def __init__(self, groq: GroqClient | None = None) -> None:
        self.groq = groq or GroqClient()

    @staticmethod
    def select_model(image_url: str | None) -> str:
        return settings.vision_model if image_url else settings.default_model

    @staticmethod
    def build_messages(messages: list[dict], image_url: str | None = None) -> list[dict]:
        """Prepend the system prompt. With an image, the final message (when
        it is from the user) is sent as text plus the image."""
        out: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
        last = len(messages) - 1
        for i, msg in enumerate(messages):
            if image_url and i == last and msg.get("role") == "user":
                out.append({
                    "role": "user",
                    "content": [
                        {"type": "text", "text": msg.get("content") or DEFAULT_IMAGE_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                })
            else:
                out.append({"role": msg.get("role"), "content": msg.get("content")})
        return out

    async def reply(self, messages: list[dict], image_url: str | None = None) -> str:
        client = self.groq.with_model(self.select_model(image_url))
        content = await client.chat(
            self.build_messages(messages, image_url),
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
        )
        return content or FALLBACK_REPLY
