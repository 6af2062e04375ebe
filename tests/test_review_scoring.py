import math
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.errors import ConfigurationError, RemoteError, ValidationError
from services.review_scoring import (
    ReviewScorer, build_completion_body, extract_score, load_request_source,
)


def _completion(probability=None, logprob=None):
    if logprob is None:
        logprob = math.log(probability)
    return {'choices': [{'text': '"', 'logprobs': {'top_logprobs': [{'"': logprob, '!': -4.2}]}}]}


def test_completion_body_shape():
    body = build_completion_body('Great food.', model='model-detect-v2')
    assert body == {
        'prompt': 'Great food.<|disc_score|>',
        'max_tokens': 1,
        'temperature': 1,
        'top_p': 1,
        'n': 1,
        'logprobs': 5,
        'stop': '\n',
        'stream': False,
        'model': 'model-detect-v2',
    }


def test_score_from_logprob():
    assert extract_score(_completion(0.73)) == 73


def test_certain_score():
    assert extract_score(_completion(logprob=0.0)) == 100


def test_non_integer_score_rejected():
    with pytest.raises(ValidationError, match='Not a integer'):
        extract_score(_completion(0.735))


@pytest.mark.parametrize('data', [
    None,
    {},
    {'choices': []},
    {'choices': [{'logprobs': {'top_logprobs': []}}]},
    {'choices': [{'logprobs': {'top_logprobs': [{'!': -1.0}]}}]},
])
def test_malformed_responses(data):
    with pytest.raises(ValidationError):
        extract_score(data)


def test_request_source_is_bundled():
    source = load_request_source()
    assert '<|disc_score|>' in source
    assert 'Functions.encodeUint256' in source


class TestReviewScorer:

    @patch('services.review_scoring.requests.post')
    def test_score_calls_completions(self, mock_post):
        mock_post.return_value = MagicMock(ok=True, json=MagicMock(return_value=_completion(0.42)))
        scorer = ReviewScorer(api_key='sk-test', base_url='https://api.openai.com/v1/', model='m')

        assert scorer.score('Nice place') == 42

        args, kwargs = mock_post.call_args
        assert args[0] == 'https://api.openai.com/v1/completions'
        assert kwargs['headers']['Authorization'] == 'Bearer sk-test'
        assert kwargs['json']['prompt'] == 'Nice place<|disc_score|>'
        assert kwargs['json']['model'] == 'm'

    def test_missing_api_key(self, env_config, monkeypatch):
        monkeypatch.setattr(env_config, 'OPENAI_API_KEY', '')
        with pytest.raises(ConfigurationError, match='OPENAI_API_KEY'):
            ReviewScorer().score('text')

    @patch('services.review_scoring.requests.post')
    def test_http_error(self, mock_post):
        mock_post.return_value = MagicMock(ok=False, status_code=500, text='upstream down')
        with pytest.raises(RemoteError, match='Request failed: 500'):
            ReviewScorer(api_key='sk').score('text')

    @patch('services.review_scoring.requests.post')
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError('refused')
        with pytest.raises(RemoteError):
            ReviewScorer(api_key='sk').score('text')

    def test_repr_hides_key(self):
        assert 'sk-secret' not in repr(ReviewScorer(api_key='sk-secret'))
