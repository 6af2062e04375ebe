"""
GitHub gist hosting for encrypted off-chain secrets.
"""
import json
import logging
import re
import time

import requests

from config import Config
from core.errors import RemoteError, ValidationError

logger = logging.getLogger('findr.gist')

GITHUB_API_URL = 'https://api.github.com'
GIST_ID_RE = re.compile(r'/([a-fA-F0-9]+)$')


class GistClient:
    def __init__(self, token=None, api_url=GITHUB_API_URL, timeout=30):
        self.token = token or Config.require('GITHUB_API_TOKEN')
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout

    def __repr__(self):
        return f"GistClient(api_url={self.api_url!r})"

    def check_token_gist_scope(self) -> bool:
        """Ensure a classic token is restricted to gists.

        Fine-grained tokens carry no x-oauth-scopes header and are accepted as-is.
        """
        try:
            resp = requests.get(
                f"{self.api_url}/user",
                headers={'Authorization': f'Bearer {self.token}'},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Failed to get user data: {e}") from e
        if resp.status_code != 200:
            raise RemoteError(f"Failed to get user data: {resp.status_code} {resp.reason}")

        header = resp.headers.get('x-oauth-scopes')
        scopes = [s.strip() for s in header.split(',') if s.strip()] if header else []
        if scopes and scopes[0] != 'gist':
            raise ValidationError("The provided Github API token does not have permissions to read and write Gists")
        if len(scopes) > 1:
            logger.warning(
                "The provided Github API token has additional permissions beyond reading and writing to Gists"
            )
        return True

    def create_gist(self, content: dict) -> str:
        """Upload content as a single private JSON file. Returns the gist html_url."""
        self.check_token_gist_scope()
        filename = f"encrypted-functions-request-data-{int(time.time() * 1000)}.json"
        body = {
            'public': False,
            'files': {filename: {'content': json.dumps(content)}},
        }
        try:
            resp = requests.post(
                f"{self.api_url}/gists",
                headers={'Authorization': f'token {self.token}'},
                json=body,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            gist_url = resp.json()['html_url']
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            raise RemoteError(f"Failed to create Gist: {e}") from e
        logger.info("Successfully created encrypted secrets Gist: %s", gist_url)
        return gist_url

    def delete_gist(self, gist_url: str) -> bool:
        match = GIST_ID_RE.search(gist_url.rstrip('/'))
        if not match:
            logger.error("Cannot extract a Gist id from %s", gist_url)
            return False
        gist_id = match.group(1)
        try:
            resp = requests.delete(
                f"{self.api_url}/gists/{gist_id}",
                headers={'Authorization': f'Bearer {self.token}'},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Error deleting Gist %s: %s", gist_url, e)
            return False
        if resp.status_code != 204:
            logger.error("Failed to delete Gist %s: %s %s", gist_url, resp.status_code, resp.reason)
            return False
        logger.info("Off-chain secrets Gist %s deleted successfully", gist_url)
        return True
