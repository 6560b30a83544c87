# config.py
import os
from functools import lru_cache

from autogen_ext.models.openai import OpenAIChatCompletionClient
from dotenv import load_dotenv

load_dotenv()

MODEL_NAME = os.getenv("MODEL_NAME", "gemini-2.5-flash")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

# Row locks are never held across user interaction, so a short wait is enough.
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", 2.0))
SUGGESTION_LIMIT = int(os.getenv("SUGGESTION_LIMIT", 5))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_model_client() -> OpenAIChatCompletionClient:
    """Model client shared by every assistant agent, built on first use."""
    return OpenAIChatCompletionClient(
        model=MODEL_NAME,
        api_key=GEMINI_API_KEY,
    )
