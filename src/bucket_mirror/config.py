"""Configuration for bucket-mirror."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from botocore.config import Config as BotoConfig
from pydantic import BaseModel, Field, field_validator

DEFAULT_HASH_FILE = "s3-hashes.json"
DEFAULT_CONCURRENCY = 10

ENV_PREFIX = "BUCKET_MIRROR_"

# botocore names for the S3 signature versions exposed on the command line
SIGNATURE_VERSIONS = {2: "s3", 4: "s3v4"}


class AWSConfig(BaseModel):
    """Credentials and endpoint settings for the S3 client."""

    profile: Optional[str] = None
    region: str = "eu-central-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    force_path_style: bool = False
    signature_version: int = 4

    @field_validator("signature_version")
    @classmethod
    def _check_signature_version(cls, value: int) -> int:
        if value not in SIGNATURE_VERSIONS:
            raise ValueError("signature version must be 2 or 4")
        return value


class S3Config(BaseModel):
    """Target bucket settings."""

    bucket_name: Optional[str] = None

    @field_validator("bucket_name")
    @classmethod
    def _strip_arn(cls, value: Optional[str]) -> Optional[str]:
        return bucket_from_arn(value) if value else value


class SyncConfig(BaseModel):
    """Settings for a single sync run."""

    directory: Path = Path(".")
    hash_file: Path = Path(DEFAULT_HASH_FILE)
    include: Optional[str] = None
    purge: bool = False
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    dry_run: bool = False


class Config(BaseModel):
    """Main configuration object."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    s3: S3Config = Field(default_factory=S3Config)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration from BUCKET_MIRROR_* environment variables."""
        config = cls()

        profile = os.environ.get(f"{ENV_PREFIX}AWS_PROFILE")
        if profile:
            config.aws.profile = profile
        region = os.environ.get(f"{ENV_PREFIX}AWS_REGION")
        if region:
            config.aws.region = region
        access_key_id = os.environ.get(f"{ENV_PREFIX}AWS_ACCESS_KEY_ID")
        if access_key_id:
            config.aws.access_key_id = access_key_id
        secret_access_key = os.environ.get(f"{ENV_PREFIX}AWS_SECRET_ACCESS_KEY")
        if secret_access_key:
            config.aws.secret_access_key = secret_access_key
        endpoint_url = os.environ.get(f"{ENV_PREFIX}ENDPOINT_URL")
        if endpoint_url:
            config.aws.endpoint_url = endpoint_url
        bucket = os.environ.get(f"{ENV_PREFIX}S3_BUCKET")
        if bucket:
            config.s3.bucket_name = bucket_from_arn(bucket)

        verbose = os.environ.get(f"{ENV_PREFIX}VERBOSE", "")
        config.verbose = verbose.lower() in ("1", "true", "yes")
        return config

    def resolved_hash_file(self) -> Path:
        """
        Return the hash file location for this run.

        With the default directory and hash file name the state would land
        inside the published tree, so it is moved one level up.
        """
        hash_file = self.sync.hash_file
        if self.sync.directory == Path(".") and hash_file == Path(DEFAULT_HASH_FILE):
            return Path("..") / DEFAULT_HASH_FILE
        return hash_file

    def get_aws_session_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``boto3.Session``."""
        kwargs: Dict[str, Any] = {"region_name": self.aws.region}
        if self.aws.profile:
            kwargs["profile_name"] = self.aws.profile
        return kwargs

    def get_s3_client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``session.client("s3")``."""
        s3_options: Dict[str, Any] = {}
        if self.aws.force_path_style:
            s3_options["addressing_style"] = "path"

        kwargs: Dict[str, Any] = {
            "region_name": self.aws.region,
            "config": BotoConfig(
                signature_version=SIGNATURE_VERSIONS[self.aws.signature_version],
                s3=s3_options or None,
            ),
        }
        if self.aws.access_key_id:
            kwargs["aws_access_key_id"] = self.aws.access_key_id
        if self.aws.secret_access_key:
            kwargs["aws_secret_access_key"] = self.aws.secret_access_key
        if self.aws.endpoint_url:
            kwargs["endpoint_url"] = self.aws.endpoint_url
        return kwargs


def bucket_from_arn(bucket: str) -> str:
    """Reduce ``arn:aws:s3:::name`` to ``name``; plain names pass through."""
    if bucket.startswith("arn:"):
        return bucket.split(":::", 1)[-1].split("/", 1)[0]
    return bucket
