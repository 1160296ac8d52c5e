import asyncio
import json
from typing import Any, Protocol

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import Settings
from .errors import SecretFetchError


class AdminCredentials(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str
    username: str
    password: str
    port: int | None = None


class UserCredentials(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: str
    password: str


class SecretStore(Protocol):
    async def get_secret(self, secret_id: str) -> dict[str, Any]: ...


class AwsSecretStore:
    """Secrets Manager backed store; the secret's SecretString holds a JSON object."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AwsSecretStore":
        try:
            client = boto3.client(
                "secretsmanager",
                region_name=settings.aws_region,
                endpoint_url=settings.secrets_endpoint_url,
            )
        except BotoCoreError as exc:
            raise SecretFetchError("secretsmanager", str(exc)) from exc
        return cls(client)

    async def get_secret(self, secret_id: str) -> dict[str, Any]:
        try:
            response = await asyncio.to_thread(self.client.get_secret_value, SecretId=secret_id)
        except (ClientError, BotoCoreError) as exc:
            raise SecretFetchError(secret_id, str(exc)) from exc

        secret_string = response.get("SecretString")
        if secret_string is None:
            raise SecretFetchError(secret_id, "secret has no SecretString")
        try:
            payload = json.loads(secret_string)
        except json.JSONDecodeError as exc:
            raise SecretFetchError(secret_id, "SecretString is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise SecretFetchError(secret_id, "SecretString is not a JSON object")
        return payload


async def fetch_vault_secret(*, addr: str, token: str, mount: str, path: str) -> dict[str, str]:
    url = f"{addr.rstrip('/')}/v1/{mount}/data/{path.lstrip('/')}"
    headers = {"X-Vault-Token": token}
    async with httpx.AsyncClient(timeout=5.0) as client:
        resp = await client.get(url, headers=headers)
        resp.raise_for_status()
        payload = resp.json()
    return payload.get("data", {}).get("data", {}) or {}


class VaultSecretStore:
    """KV v2 store; the secret id is the path under the mount."""

    def __init__(self, addr: str, token: str, mount: str = "kv"):
        self.addr = addr
        self.token = token
        self.mount = mount

    async def get_secret(self, secret_id: str) -> dict[str, Any]:
        try:
            secret = await fetch_vault_secret(addr=self.addr, token=self.token, mount=self.mount, path=secret_id)
        except httpx.HTTPError as exc:
            raise SecretFetchError(secret_id, str(exc)) from exc
        if not secret:
            raise SecretFetchError(secret_id, "secret is empty")
        return secret


def build_secret_store(settings: Settings) -> SecretStore:
    if settings.secret_backend == "vault":
        if not (settings.vault_addr and settings.vault_token):
            raise RuntimeError("Vault backend requires APP_VAULT_ADDR and APP_VAULT_TOKEN")
        return VaultSecretStore(settings.vault_addr, settings.vault_token, settings.vault_kv_mount)
    return AwsSecretStore.from_settings(settings)


async def fetch_admin_credentials(store: SecretStore, secret_id: str) -> AdminCredentials:
    payload = await store.get_secret(secret_id)
    try:
        return AdminCredentials.model_validate(payload)
    except ValidationError as exc:
        raise SecretFetchError(secret_id, "missing administrative credential fields") from exc


async def fetch_user_credentials(store: SecretStore, secret_id: str) -> UserCredentials:
    payload = await store.get_secret(secret_id)
    try:
        return UserCredentials.model_validate(payload)
    except ValidationError as exc:
        raise SecretFetchError(secret_id, "missing application credential fields") from exc
