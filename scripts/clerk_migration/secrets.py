"""Secret references for CLERK_SECRET_KEY and POSTGRES_URL.

A value may be given literally or as a reference into a cloud secret store,
so production runs do not need plaintext credentials in ``.env``:

  aws-secret://prod/clerk              whole SecretString
  aws-secret://prod/clerk#secret_key   one key of a JSON SecretString
  gcp-secret://clerk-key               latest version in GCP_PROJECT_ID
  gcp-secret://projects/p/secrets/s/versions/3

Lookup failures surface as ConfigError so the run stops before any
organization is created.
"""

from __future__ import annotations

import json
import logging
import os

from scripts.clerk_migration.errors import ConfigError

logger = logging.getLogger("clerk_migration.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"


def resolve_secret(value: str) -> str:
    if value.startswith(_AWS_PREFIX):
        return _from_aws(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _from_gcp(value[len(_GCP_PREFIX):])
    return value


def _from_aws(ref: str) -> str:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    secret_name, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    logger.info("Reading %s from AWS Secrets Manager", secret_name)
    try:
        secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]
    except (BotoCoreError, ClientError) as exc:
        raise ConfigError(f"Cannot read AWS secret {secret_name!r}: {exc}") from exc

    if not json_key:
        return secret_string
    try:
        return str(json.loads(secret_string)[json_key])
    except (ValueError, KeyError) as exc:
        raise ConfigError(f"Key {json_key!r} not found in secret {secret_name!r}") from exc


def _from_gcp(ref: str) -> str:
    from google.api_core.exceptions import GoogleAPIError
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise ConfigError(
                f"GCP_PROJECT_ID is required to resolve secret reference {ref!r}"
            )
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    logger.info("Reading %s from GCP Secret Manager", name)
    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": name})
    except GoogleAPIError as exc:
        raise ConfigError(f"Cannot read GCP secret {name!r}: {exc}") from exc
    return response.payload.data.decode("UTF-8")


def resolve_database_url() -> str:
    """POSTGRES_URL, falling back to DATABASE_URL. Empty string if neither is set."""
    url = os.environ.get("POSTGRES_URL") or os.environ.get("DATABASE_URL", "")
    return resolve_secret(url) if url else ""
