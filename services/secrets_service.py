"""
Secrets preparation for Functions requests.

Inline secrets are signed, encrypted to the DON public key and hosted in a
private gist; the request then carries only the encrypted gist URL.
Remote secrets (a list of URLs) are verified and their joined URLs encrypted.

Encryption is ECIES over secp256k1 exactly as eth-crypto produces it:
ECDH shared x -> SHA-512 -> (AES-256-CBC key, HMAC-SHA256 key), serialised
as iv(16) | compressed ephemeral key(33) | mac(32) | ciphertext.
"""
import base64
import hashlib
import hmac
import json
import logging
import os
from dataclasses import dataclass

import requests
from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from eth_account import Account
from web3 import Web3

from config import Config
from core.errors import ConfigurationError, RemoteError, ValidationError

logger = logging.getLogger('findr.secrets')

DEFAULT_SECRETS_KEY = '0x0'
SECRETS_FETCH_TIMEOUT = 3
SECRETS_MAX_CONTENT_LENGTH = 1_000_000


@dataclass(frozen=True)
class SecretsBundle:
    encrypted: str = '0x'
    gist_url: str = None

    @property
    def needs_cleanup(self) -> bool:
        return self.gist_url is not None


def _load_public_key(reader_public_key):
    raw = bytes.fromhex(reader_public_key[2:] if reader_public_key.startswith('0x') else reader_public_key)
    if len(raw) == 64:
        raw = b'\x04' + raw
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)
    except ValueError as e:
        raise ValidationError(f"Invalid secp256k1 public key: {e}") from e


def encrypt(reader_public_key: str, message: str) -> str:
    """Encrypt message to a secp256k1 public key. Returns hex without 0x."""
    public_key = _load_public_key(reader_public_key)
    ephemeral = ec.generate_private_key(ec.SECP256K1())
    shared_x = ephemeral.exchange(ec.ECDH(), public_key)
    digest = hashlib.sha512(shared_x).digest()
    encryption_key, mac_key = digest[:32], digest[32:]

    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(message.encode('utf-8')) + padder.finalize()
    encryptor = Cipher(algorithms.AES(encryption_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    ephemeral_public = ephemeral.public_key()
    uncompressed = ephemeral_public.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)
    compressed = ephemeral_public.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint)
    mac = hmac.new(mac_key, iv + uncompressed + ciphertext, hashlib.sha256).digest()
    return (iv + compressed + mac + ciphertext).hex()


def sign_message(signer_private_key: str, message: str) -> str:
    """Sign keccak256(message); 0x-prefixed r|s|v with v in {27, 28}."""
    message_hash = Web3.keccak(text=message)
    signed = Account.unsafe_sign_hash(message_hash, signer_private_key)
    return '0x' + bytes(signed.signature).hex()


def encrypt_with_signature(signer_private_key: str, reader_public_key: str, message: str) -> str:
    payload = {
        'message': message,
        'signature': sign_message(signer_private_key, message),
    }
    return encrypt(reader_public_key, json.dumps(payload, separators=(',', ':'), ensure_ascii=False))


def _read_limited(resp, limit):
    """Read a streamed body, aborting as soon as it grows past limit bytes."""
    body = bytearray()
    for chunk in resp.iter_content(chunk_size=64 * 1024):
        body.extend(chunk)
        if len(body) > limit:
            raise ValueError(f"response exceeds {limit} bytes")
    return bytes(body)


def verify_offchain_secrets(secrets_urls, node_addresses) -> bool:
    """Every URL must serve the same JSON object covering every node (or a 0x0 default)."""
    responses = []
    for url in secrets_urls:
        try:
            with requests.get(url, timeout=SECRETS_FETCH_TIMEOUT, stream=True) as resp:
                resp.raise_for_status()
                body = _read_limited(resp, SECRETS_MAX_CONTENT_LENGTH)
            responses.append((url, json.loads(body)))
        except (requests.exceptions.RequestException, ValueError) as e:
            raise RemoteError(f"Failed to fetch off-chain secrets from {url}\n{e}") from e

    first_url, first_secrets = responses[0]
    for url, secrets in responses:
        if secrets != first_secrets:
            raise ValidationError(
                f"Off-chain secrets URLs {url} and {first_url} do not contain the same JSON object. "
                f"All secrets URLs must have an identical JSON object."
            )
        if not isinstance(secrets, dict):
            raise ValidationError(f"Off-chain secrets at {url} must be a JSON object")
        for node_address in node_addresses:
            if not secrets.get(node_address.lower()) and not secrets.get(DEFAULT_SECRETS_KEY):
                raise ValidationError(
                    f"No secrets specified for node {node_address.lower()} and no default secrets found."
                )
    return True


class SecretsService:
    def __init__(self, bridge, gist_client=None, signer_private_key=None):
        self.bridge = bridge
        self.gist_client = gist_client
        self.signer_private_key = signer_private_key

    def prepare(self, secrets) -> SecretsBundle:
        """Encrypt inline (dict) or remote (list of URLs) secrets for a request."""
        if not secrets:
            return SecretsBundle()
        if isinstance(secrets, dict):
            return self._prepare_inline(secrets)
        if isinstance(secrets, (list, tuple)):
            return self._prepare_remote(list(secrets))
        raise ValidationError("Unsupported remote secrets format. Remote secrets must be an array.")

    def _prepare_inline(self, secrets):
        if not self.signer_private_key:
            raise ConfigurationError("signer private key is required to encrypt inline secrets")
        if self.gist_client is None:
            raise ConfigurationError("GITHUB_API_TOKEN environment variable not set")

        don_public_key = self.bridge.get_don_public_key()
        encrypted_payload = encrypt_with_signature(
            self.signer_private_key, don_public_key, json.dumps(secrets, separators=(',', ':')))
        offchain_secrets = {
            DEFAULT_SECRETS_KEY: base64.b64encode(bytes.fromhex(encrypted_payload)).decode('ascii'),
        }
        gist_url = self.gist_client.create_gist(offchain_secrets)
        return SecretsBundle(
            encrypted='0x' + encrypt(don_public_key, f"{gist_url}/raw"),
            gist_url=gist_url,
        )

    def _prepare_remote(self, secrets_urls):
        if not all(isinstance(url, str) for url in secrets_urls):
            raise ValidationError("Remote secrets must be a list of URLs")
        don_public_key = self.bridge.get_don_public_key()
        verify_offchain_secrets(secrets_urls, self.bridge.get_node_addresses())
        logger.info("Verified %d off-chain secrets URL(s)", len(secrets_urls))
        return SecretsBundle(encrypted='0x' + encrypt(don_public_key, ' '.join(secrets_urls)))


def build_secrets_service(bridge, inline=True):
    """SecretsService wired from Config; the gist client is only built for inline secrets."""
    from services.gist_service import GistClient

    gist_client = GistClient(Config.require('GITHUB_API_TOKEN')) if inline else None
    return SecretsService(bridge, gist_client=gist_client, signer_private_key=Config.DEPLOYER_PRIVATE_KEY)
