from groq import AsyncGroq

from app.config import settings


class GroqClient:
    """Async Groq chat client used by the study assistant.

    Each instance is bound to one model. ``with_model()`` returns a clone
    bound to another model that reuses the same ``AsyncGroq`` connection
    pool; ``ChatService`` uses it to pick the vision model for questions
    with an attached image::

        groq = GroqClient()
        answer = await groq.with_model(settings.vision_model).chat(image_messages)
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.default_model
        self._client = AsyncGroq(api_key=api_key or settings.groq_api_key)

    def with_model(self, model_name: str) -> "GroqClient":
        clone = GroqClient.__new__(GroqClient)
        clone._model = model_name
        clone._client = self._client
        return clone

    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        """Return the first choice's text, or None if the provider sent none.

        ``groq.APIStatusError`` propagates so callers can report upstream
        failures separately from local ones.
        """
        params: dict = {"model": model or self._model, "messages": messages}
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        completion = await self._client.chat.completions.create(**params)
        if not completion.choices:
            return None
        return completion.choices[0].message.content
