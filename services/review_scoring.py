"""
AI-generated-text score for restaurant reviews.

The oracle network executes sources/openai-review-score.js for on-chain requests;
ReviewScorer performs the same completion call locally so a review can be
scored (and the API key checked) without spending LINK.
"""
import math
import os

import requests

from config import Config
from core.errors import ConfigurationError, RemoteError, ValidationError

DISC_SCORE_SUFFIX = '<|disc_score|>'
SCORE_TOKEN = '"'
INTEGER_TOLERANCE = 1e-6

SOURCE_PATH = os.path.join(os.path.dirname(__file__), '..', 'sources', 'openai-review-score.js')


def load_request_source(path=SOURCE_PATH) -> str:
    with open(path, encoding='utf-8') as f:
        return f.read()


def build_completion_body(text: str, model: str = 'model-detect-v2') -> dict:
    return {
        'prompt': text + DISC_SCORE_SUFFIX,
        'max_tokens': 1,
        'temperature': 1,
        'top_p': 1,
        'n': 1,
        'logprobs': 5,
        'stop': '\n',
        'stream': False,
        'model': model,
    }


def extract_score(data) -> int:
    """Probability (0-100) that the text is AI generated.

    Reads the log-probability of the score token from the first choice and
    requires 100 * exp(logprob) to be a whole number.
    """
    if not data:
        raise ValidationError("No data returned by API")
    try:
        top_logprobs = data['choices'][0]['logprobs']['top_logprobs'][0]
        logprob = float(top_logprobs[SCORE_TOKEN])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed completion response: missing {e}") from e

    value = 100 * math.exp(logprob)
    if not math.isfinite(value):
        raise ValidationError(f"Not a integer {value}")
    score = round(value)
    if abs(value - score) > INTEGER_TOLERANCE:
        raise ValidationError(f"Not a integer {value}")
    return score


class ReviewScorer:
    def __init__(self, api_key=None, base_url=None, model=None, timeout=60):
        self.api_key = api_key or Config.OPENAI_API_KEY
        self.base_url = (base_url or Config.OPENAI_BASE_URL).rstrip('/')
        self.model = model or Config.OPENAI_MODEL
        self.timeout = timeout

    def __repr__(self):
        return f"ReviewScorer(base_url={self.base_url!r}, model={self.model!r})"

    def score(self, text: str) -> int:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable not set for Open AI API")
        try:
            resp = requests.post(
                f"{self.base_url}/completions",
                headers={
                    'Authorization': f'Bearer {self.api_key}',
                    'Content-Type': 'application/json',
                },
                json=build_completion_body(text, self.model),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Request failed: {e}") from e
        if not resp.ok:
            raise RemoteError(f"Request failed: {resp.status_code} {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteError(f"Completion API returned invalid JSON: {e}") from e
        return extract_score(data)
