"""Create the ledger and checkpoint DynamoDB tables (and optionally the bucket and job queue).

Usage:
    python scripts/create_tables.py --endpoint-url http://localhost:4566 --bucket layered-blobs
"""

from __future__ import annotations

import argparse
from typing import Any

import boto3

from layered.persistence.dynamodb_backend import CHECKPOINT_TABLE, TABLE_NAMES

TABLE_DEFINITIONS: list[str] = [*TABLE_NAMES.values(), CHECKPOINT_TABLE]


def create_tables(ddb: Any, suffix: str = "") -> list[str]:
    """Create all workflow tables. Skips tables that already exist. Returns the created names."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])
    created: list[str] = []

    for base in TABLE_DEFINITIONS:
        table_name = f"{base}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        created.append(table_name)
        print(f"  Created table {table_name}")
    return created


def create_bucket(s3: Any, bucket: str) -> None:
    existing = [b["Name"] for b in s3.list_buckets().get("Buckets", [])]
    if bucket in existing:
        print(f"  Bucket {bucket} already exists, skipping")
        return
    s3.create_bucket(Bucket=bucket)
    print(f"  Created bucket {bucket}")


def create_queue(sqs: Any, name: str, visibility_timeout: int = 900) -> str:
    """Create (or look up) the job queue and return its URL."""
    resp = sqs.create_queue(
        QueueName=name, Attributes={"VisibilityTimeout": str(visibility_timeout)},
    )
    print(f"  Job queue {resp['QueueUrl']}")
    return resp["QueueUrl"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Create Layered workflow tables")
    parser.add_argument("--endpoint-url", default=None, help="AWS endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--bucket", default=None, help="Also create this S3 bucket")
    parser.add_argument("--queue-name", default=None, help="Also create this SQS job queue")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    print("Creating tables...")
    create_tables(boto3.resource("dynamodb", **kwargs), suffix=args.table_suffix)

    if args.bucket:
        print("Creating bucket...")
        create_bucket(boto3.client("s3", **kwargs), args.bucket)

    if args.queue_name:
        print("Creating queue...")
        create_queue(boto3.client("sqs", **kwargs), args.queue_name)

    print("Done!")


if __name__ == "__main__":
    main()
