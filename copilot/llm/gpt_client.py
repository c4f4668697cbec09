# copilot/llm/gpt_client.py
import os
from typing import Tuple

from dotenv import load_dotenv
from openai import OpenAI
import tiktoken

load_dotenv()


def _enc_for(model):
    try:
        return tiktoken.encoding_for_model(model)
    except Exception:
        pass
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception:
        # e.g. offline and the encoding file was never cached
        return None


def count_tokens(text, model):
    enc = _enc_for(model)
    if enc:
        try:
            return len(enc.encode(text or ""))
        except Exception:
            pass
    # crude fallback
    return max(1, len(text or "") // 4)


class GPTClient:
    """OpenAI chat client; disabled unless USE_OPENAI=true."""

    def __init__(self):
        self.use = os.getenv("USE_OPENAI", "false").lower() == "true"
        self.key = os.getenv("OPENAI_API_KEY", "") or ""
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.temperature = float(os.getenv("OPENAI_TEMPERATURE", "0.2"))

        if self.use:
            if not self.key:
                raise RuntimeError("USE_OPENAI=true but OPENAI_API_KEY is missing.")
            self.client = OpenAI(api_key=self.key)
        else:
            self.client = None

    @property
    def enabled(self) -> bool:
        return bool(self.use and self.client)

    def complete(self, system: str, message: str, max_tokens: int) -> Tuple[str, dict]:
        if not self.enabled:
            raise RuntimeError("GPT disabled or client unavailable.")
        in_t = count_tokens(system, self.model) + count_tokens(message, self.model)
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": message},
                ],
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise RuntimeError(f"OpenAI call failed: {e}") from e
        text = (resp.choices[0].message.content or "").strip()
        out_t = count_tokens(text, self.model)
        return text, {"in_tokens": in_t, "out_tokens": out_t, "llm": self.model}
