"""S3-compatible CheckpointStore."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import boto3
from botocore.client import BaseClient
from botocore.exceptions import ClientError

from .checkpoint_store import CheckpointStore

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class S3Config:
    bucket: str
    prefix: str
    endpoint_url: str | None = None
    region: str | None = None
    access_key: str | None = None
    secret_key: str | None = None


def _object_key(prefix: str, job_key: str) -> str:
    return "/".join([prefix.rstrip("/"), f"job_key={job_key}", "context.json"]).strip("/")


class ObjectStorageCheckpointStore(CheckpointStore):
    def __init__(self, config: S3Config, client: BaseClient | None = None) -> None:
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=config.endpoint_url,
                region_name=config.region,
                aws_access_key_id=config.access_key,
                aws_secret_access_key=config.secret_key,
            )
        self.client: BaseClient = client
        self.bucket = config.bucket
        self.prefix = config.prefix.strip("/")

    def load(self, job_key: str) -> Optional[dict]:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=_object_key(self.prefix, job_key))
        except ClientError as exc:
            if exc.response["Error"].get("Code") in _MISSING_CODES:
                return None
            raise
        return json.loads(obj["Body"].read().decode("utf-8"))

    def save(self, job_key: str, context: Mapping[str, object]) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=_object_key(self.prefix, job_key),
            Body=json.dumps(dict(context), sort_keys=True).encode("utf-8"),
            ContentType="application/json",
        )

    def delete(self, job_key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=_object_key(self.prefix, job_key))

    def list_keys(self) -> Sequence[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        keys = set()
        list_prefix = f"{self.prefix}/" if self.prefix else ""
        for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
            for item in page.get("Contents", []) or []:
                key = item.get("Key", "")
                if not key.endswith("/context.json") or "job_key=" not in key:
                    continue
                keys.add(key.rsplit("/", 2)[-2].replace("job_key=", "", 1))
        return sorted(keys)


__all__ = ["ObjectStorageCheckpointStore", "S3Config"]
