import json
import logging
import re

import requests

from hugos.errors import GenerationError

logger = logging.getLogger(__name__)

API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def clean_json_text(text):
    """Strip markdown code fences Gemini wraps around JSON answers"""
    return _FENCE_RE.sub('', (text or '').strip()).strip()


class GeminiClient:
    """Minimal client for the Gemini generateContent REST endpoint"""

    def __init__(self, api_key, model='gemini-1.5-flash-latest', timeout=60, session=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.http = session or requests.Session()

    def generate_text(self, prompt, temperature=0.7):
        url = API_URL.format(model=self.model)
        payload = {
            'contents': [{'parts': [{'text': prompt}]}],
            'generationConfig': {'temperature': temperature},
        }
        try:
            response = self.http.post(url, params={'key': self.api_key}, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Gemini request failed: %s", e)
            raise GenerationError(f'Gemini request failed: {e}') from e

        try:
            parts = data['candidates'][0]['content']['parts']
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError('Gemini returned no candidates') from e
        return ''.join(part.get('text', '') for part in parts)

    def generate_json(self, prompt, temperature=0.2):
        text = clean_json_text(self.generate_text(prompt, temperature=temperature))
        try:
            return json.loads(text)
        except ValueError:
            # Answers sometimes carry prose around the JSON document
            match = re.search(r'(\{.*\}|\[.*\])', text, re.DOTALL)
            if match:
                try:
                    return json.loads(match.group(1))
                except ValueError:
                    pass
            raise GenerationError('Gemini returned malformed JSON')
