"""Translation service implementation with Gemini API and NLLB-200 fallback."""

import logging
import random
import threading
import time
from typing import Optional

try:
    from google import genai
    from google.genai import types
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    genai = None
    types = None

try:
    from transformers import AutoTokenizer, AutoModelForSeq2SeqLM
    TRANSFORMERS_AVAILABLE = True
except ImportError:
    TRANSFORMERS_AVAILABLE = False
    AutoTokenizer = None
    AutoModelForSeq2SeqLM = None

from .base import BaseTranslationService


logger = logging.getLogger(__name__)

GEMINI_MODEL = 'gemini-2.0-flash-exp'
NLLB_MODEL = 'facebook/nllb-200-distilled-600M'

# ISO 639-1 codes to NLLB-200 language codes
NLLB_LANGUAGE_CODES = {
    "en": "eng_Latn",
    "ru": "rus_Cyrl",
    "uk": "ukr_Cyrl",
    "es": "spa_Latn",
    "fr": "fra_Latn",
    "de": "deu_Latn",
    "it": "ita_Latn",
    "pt": "por_Latn",
    "nl": "nld_Latn",
    "pl": "pol_Latn",
    "cs": "ces_Latn",
    "tr": "tur_Latn",
    "zh": "zho_Hans",
    "ja": "jpn_Jpan",
    "ko": "kor_Hang",
    "ar": "arb_Arab",
    "hi": "hin_Deva",
    "he": "heb_Hebr",
    "el": "ell_Grek",
    "vi": "vie_Latn",
    "th": "tha_Thai",
    "id": "ind_Latn",
    "ro": "ron_Latn",
    "hu": "hun_Latn",
    "sv": "swe_Latn",
    "da": "dan_Latn",
    "fi": "fin_Latn",
    "no": "nob_Latn",
}


def nllb_language_code(language: str) -> str:
    """Map an ISO 639-1 code (or an NLLB code) to an NLLB-200 code.

    Raises:
        ValueError: If the language is not supported
    """
    if language in NLLB_LANGUAGE_CODES.values():
        return language
    code = NLLB_LANGUAGE_CODES.get(language.lower())
    if code is None:
        raise ValueError(f"Language '{language}' is not supported by NLLB-200")
    return code


class TranslationService(BaseTranslationService):
    """Translates one segment at a time: Gemini first, NLLB-200 as fallback.

    Safe to share between concurrent jobs; requests are rate limited across
    all callers.
    """

    def __init__(
        self,
        gemini_api_key: Optional[str] = None,
        max_retries: int = 3,
        use_fallback: bool = True
    ):
        self.gemini_client = None
        self.nllb_model = None
        self.nllb_tokenizer = None
        self.rate_limit_delay = 1.0
        self.max_retries = max_retries
        self.use_fallback = use_fallback
        self.last_request_time = 0.0
        self._rate_lock = threading.Lock()
        self._nllb_lock = threading.Lock()

        if gemini_api_key and GEMINI_AVAILABLE:
            try:
                self.gemini_client = genai.Client(api_key=gemini_api_key)
                logger.info("Gemini API client initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini API: {e}")
                self.gemini_client = None
        elif gemini_api_key:
            logger.warning("Google Genai not available - install with: pip install google-genai")

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """Translate one segment's text.

        Raises:
            RuntimeError: If every available backend fails
        """
        if not text.strip():
            return text

        if self.gemini_client:
            try:
                return self._translate_with_retry(text, source_language, target_language)
            except Exception as e:
                if not self.use_fallback:
                    raise RuntimeError(f"Gemini translation failed: {e}")
                logger.warning(f"Gemini translation failed, falling back to NLLB: {e}")
        elif not self.use_fallback:
            raise RuntimeError("No translation backend configured")

        return self.fallback_translate(text, source_language, target_language)

    def _translate_with_retry(self, text: str, source_language: str, target_language: str) -> str:
        """Translate with rate limiting and exponential backoff."""
        for attempt in range(self.max_retries):
            try:
                self._apply_rate_limit()

                response = self.gemini_client.models.generate_content(
                    model=GEMINI_MODEL,
                    contents=self._create_translation_prompt(text, source_language, target_language),
                    config=types.GenerateContentConfig(
                        thinking_config=types.ThinkingConfig(thinking_budget=0)
                    )
                )

                translated = self._parse_gemini_response(response.text)
                with self._rate_lock:
                    self.rate_limit_delay = max(1.0, self.rate_limit_delay * 0.8)
                return translated

            except Exception as e:
                logger.warning(f"Gemini API attempt {attempt + 1} failed: {e}")
                if attempt == self.max_retries - 1:
                    raise

                with self._rate_lock:
                    delay = self.rate_limit_delay * (2 ** attempt) + random.uniform(0, 1)
                    self.rate_limit_delay = min(60.0, self.rate_limit_delay * 1.5)
                time.sleep(delay)

        raise RuntimeError("Translation retries exhausted")

    def _apply_rate_limit(self) -> None:
        with self._rate_lock:
            wait = self.rate_limit_delay - (time.time() - self.last_request_time)
            # Reserve the slot before sleeping so concurrent callers queue up
            self.last_request_time = time.time() + max(0.0, wait)
        if wait > 0:
            time.sleep(wait)

    @staticmethod
    def _create_translation_prompt(text: str, source_language: str, target_language: str) -> str:
        return (
            f"Translate the following video transcript segment from {source_language} "
            f"to {target_language}.\n\n"
            "Preserve the meaning, tone, and context, and keep natural speech patterns. "
            "The translation will be spoken aloud in the same time slot, so keep it concise.\n\n"
            "Return only the translation, with no quotes or commentary.\n\n"
            f"Segment: {text}"
        )

    @staticmethod
    def _parse_gemini_response(response_text: Optional[str]) -> str:
        lines = [line.strip() for line in (response_text or "").strip().split('\n') if line.strip()]
        if not lines:
            raise RuntimeError("Gemini returned an empty translation")
        return " ".join(lines)

    def fallback_translate(self, text: str, source_language: str, target_language: str) -> str:
        """Translate with the local NLLB-200 model.

        Raises:
            RuntimeError: If the model is unavailable or translation fails
        """
        try:
            source_code = nllb_language_code(source_language)
            target_code = nllb_language_code(target_language)
            self._ensure_nllb_loaded()

            with self._nllb_lock:
                self.nllb_tokenizer.src_lang = source_code
                inputs = self.nllb_tokenizer(text, return_tensors="pt", padding=True, truncation=True)
                translated_tokens = self.nllb_model.generate(
                    **inputs,
                    forced_bos_token_id=self.nllb_tokenizer.convert_tokens_to_ids(target_code),
                    max_length=512
                )
                translated = self.nllb_tokenizer.batch_decode(translated_tokens, skip_special_tokens=True)[0]
        except Exception as e:
            logger.error(f"Fallback translation failed: {e}")
            raise RuntimeError(f"Fallback translation failed: {e}")

        if not translated.strip():
            raise RuntimeError("NLLB-200 returned an empty translation")
        return translated

    def _ensure_nllb_loaded(self) -> None:
        if not TRANSFORMERS_AVAILABLE:
            raise RuntimeError("Transformers library required for NLLB fallback - install with: pip install transformers")

        with self._nllb_lock:
            if self.nllb_model is None or self.nllb_tokenizer is None:
                logger.info("Loading NLLB-200 model for fallback translation...")
                self.nllb_tokenizer = AutoTokenizer.from_pretrained(NLLB_MODEL)
                self.nllb_model = AutoModelForSeq2SeqLM.from_pretrained(NLLB_MODEL)
                logger.info("NLLB-200 model loaded successfully")
