"""DynamoDB backends implementing ILedger and ICheckpointStore."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

import boto3
import structlog
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from layered.core.exceptions import (
    BatchWriteError,
    CheckpointError,
    DuplicateRowError,
    LedgerError,
    RowNotFoundError,
)
from layered.models.ledger import (
    ROW_TYPES,
    Blob,
    BlobRole,
    Entity,
    Insert,
    Prediction,
    PredictionBlob,
    Project,
    Row,
    Status,
    Update,
    Write,
    utcnow,
)
from layered.models.workflow import Checkpoint

logger = structlog.get_logger(__name__)

TABLE_NAMES: dict[Entity, str] = {
    Entity.PROJECTS: "layered-projects",
    Entity.PREDICTIONS: "layered-predictions",
    Entity.BLOBS: "layered-blobs",
    Entity.PREDICTION_BLOBS: "layered-prediction-blobs",
}
CHECKPOINT_TABLE = "layered-checkpoints"

_PK_PREFIX: dict[Entity, str] = {
    Entity.PROJECTS: "PROJECT",
    Entity.PREDICTIONS: "PREDICTION",
    Entity.BLOBS: "BLOB",
}
_META = "META"


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        else:
            out[k] = v
    return out


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _row_key(row: Row) -> dict[str, str]:
    if isinstance(row, PredictionBlob):
        return _link_key(row.prediction_id, row.role, row.position)
    return {"PK": f"{_PK_PREFIX[row.entity]}#{row.id}", "SK": _META}


def _entity_key(entity: Entity, row_id: str) -> dict[str, str]:
    if entity is Entity.PREDICTION_BLOBS:
        raise LedgerError("prediction_blobs rows are immutable and addressed by prediction")
    return {"PK": f"{_PK_PREFIX[entity]}#{row_id}", "SK": _META}


def _link_key(prediction_id: str, role: BlobRole | str, position: int) -> dict[str, str]:
    return {"PK": f"PREDICTION#{prediction_id}", "SK": f"ROLE#{role}#{position:06d}"}


def _to_item(row: Row) -> dict[str, Any]:
    item = {k: _encode_value(v) for k, v in row.model_dump().items()}
    item.update(_row_key(row))
    return item


def _from_item(entity: Entity, item: dict[str, Any]) -> Row:
    data = _decode_decimals(item)
    data.pop("PK", None)
    data.pop("SK", None)
    return ROW_TYPES[entity].model_validate(data)  # type: ignore[return-value]


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class _ThreadLocalResource:
    """One boto3 DynamoDB resource per thread; resources must not be shared across threads."""

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._local = threading.local()

    def get(self):
        ddb = getattr(self._local, "ddb", None)
        if ddb is None:
            ddb = boto3.session.Session().resource("dynamodb", **self._kwargs)
            self._local.ddb = ddb
        return ddb


def _query_all(table, **kwargs: Any) -> list[dict[str, Any]]:
    """Run a query, following LastEvaluatedKey until every page is read."""
    items: list[dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        if "LastEvaluatedKey" not in resp:
            return items
        kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


class DynamoDBLedger:
    """Production ILedger backed by DynamoDB; ``batch`` maps to TransactWriteItems."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._table_suffix = table_suffix
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._resources = _ThreadLocalResource(**kwargs)
        self._client = boto3.client("dynamodb", **kwargs)
        self._serializer = TypeSerializer()

    def _table_name(self, entity: Entity) -> str:
        return f"{TABLE_NAMES[entity]}{self._table_suffix}"

    def _table(self, entity: Entity):
        return self._resources.get().Table(self._table_name(entity))

    def _get_item(self, entity: Entity, row_id: str) -> Optional[Row]:
        try:
            resp = self._table(entity).get_item(
                Key=_entity_key(entity, row_id), ConsistentRead=True,
            )
        except ClientError as exc:
            raise LedgerError(f"DynamoDB get failed for {entity} {row_id!r}: {exc}") from exc
        item = resp.get("Item")
        return _from_item(entity, item) if item else None

    # ---- ILedger methods ----

    def insert(self, row: Row) -> None:
        try:
            self._table(row.entity).put_item(
                Item=_to_item(row),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise DuplicateRowError(f"{row.entity} row {row.id!r} already exists") from exc
            raise LedgerError(f"DynamoDB insert failed for {row.entity} {row.id!r}: {exc}") from exc

    def update(self, entity: Entity, row_id: str, **changes: Any) -> None:
        expression, condition, names, values = self._update_expression(changes)
        try:
            self._table(entity).update_item(
                Key=_entity_key(entity, row_id),
                UpdateExpression=expression,
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise RowNotFoundError(f"{entity} row {row_id!r} not found") from exc
            raise LedgerError(f"DynamoDB update failed for {entity} {row_id!r}: {exc}") from exc

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._get_item(Entity.PROJECTS, project_id)  # type: ignore[return-value]

    def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        return self._get_item(Entity.PREDICTIONS, prediction_id)  # type: ignore[return-value]

    def get_blob(self, blob_id: str) -> Optional[Blob]:
        return self._get_item(Entity.BLOBS, blob_id)  # type: ignore[return-value]

    def list_predictions(self, project_id: str) -> list[Prediction]:
        items = self._scan(Entity.PREDICTIONS, Attr("project_id").eq(project_id))
        rows = [_from_item(Entity.PREDICTIONS, i) for i in items]
        return sorted(rows, key=lambda p: p.created_at)  # type: ignore[return-value]

    def list_prediction_blobs(
        self, prediction_id: str, role: Optional[BlobRole] = None
    ) -> list[PredictionBlob]:
        condition = Key("PK").eq(f"PREDICTION#{prediction_id}")
        if role is not None:
            condition = condition & Key("SK").begins_with(f"ROLE#{role}#")
        try:
            items = _query_all(
                self._table(Entity.PREDICTION_BLOBS), KeyConditionExpression=condition,
            )
        except ClientError as exc:
            raise LedgerError(f"DynamoDB query failed for prediction {prediction_id!r}: {exc}") from exc
        # SK sorts by role then zero-padded position
        return [_from_item(Entity.PREDICTION_BLOBS, i) for i in items]  # type: ignore[misc]

    def batch(self, writes: Sequence[Write]) -> None:
        if not writes:
            return
        transact_items = [self._transact_item(w) for w in writes]
        try:
            self._client.transact_write_items(TransactItems=transact_items)
        except ClientError as exc:
            reasons = exc.response.get("CancellationReasons", [])
            logger.warning("ledger_batch_rejected", writes=len(writes), reasons=reasons)
            raise BatchWriteError(f"DynamoDB transaction rejected: {exc}") from exc

    def list_stale_projects(self, older_than: datetime) -> list[Project]:
        condition = Attr("status").eq(str(Status.PROCESSING)) & Attr("created_at").lt(
            older_than.isoformat()
        )
        rows = [_from_item(Entity.PROJECTS, i) for i in self._scan(Entity.PROJECTS, condition)]
        return sorted(rows, key=lambda p: p.created_at)  # type: ignore[return-value]

    # ---- helpers ----

    def _scan(self, entity: Entity, condition: Any) -> list[dict[str, Any]]:
        tbl = self._table(entity)
        items: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"FilterExpression": condition}
        try:
            while True:
                resp = tbl.scan(**kwargs)
                items.extend(resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return items
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as exc:
            raise LedgerError(f"DynamoDB scan failed for {entity}: {exc}") from exc

    @staticmethod
    def _update_expression(
        changes: dict[str, Any], expected: Optional[dict[str, Any]] = None
    ) -> tuple[str, str, dict[str, str], dict[str, Any]]:
        """Build (update expression, condition expression, names, values)."""
        changes = {**changes, "updated_at": utcnow()}
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        clauses: list[str] = []
        for i, (field, value) in enumerate(changes.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = _encode_value(value)
            clauses.append(f"#f{i} = :v{i}")
        conditions = ["attribute_exists(PK)"]
        for i, (field, value) in enumerate((expected or {}).items()):
            names[f"#c{i}"] = field
            values[f":c{i}"] = _encode_value(value)
            conditions.append(f"#c{i} = :c{i}")
        return "SET " + ", ".join(clauses), " AND ".join(conditions), names, values

    def _serialize(self, data: dict[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in data.items()}

    def _transact_item(self, write: Write) -> dict[str, Any]:
        if isinstance(write, Insert):
            return {
                "Put": {
                    "TableName": self._table_name(write.entity),
                    "Item": self._serialize(_to_item(write.row)),
                    "ConditionExpression": "attribute_not_exists(PK)",
                }
            }
        assert isinstance(write, Update)
        expression, condition, names, values = self._update_expression(write.changes, write.expected)
        return {
            "Update": {
                "TableName": self._table_name(write.entity),
                "Key": self._serialize(_entity_key(write.entity, write.row_id)),
                "UpdateExpression": expression,
                "ConditionExpression": condition,
                "ExpressionAttributeNames": names,
                "ExpressionAttributeValues": self._serialize(values),
            }
        }


class DynamoDBCheckpointStore:
    """Production ICheckpointStore; one item per (job, step)."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._resources = _ThreadLocalResource(**kwargs)
        self._table_name = f"{CHECKPOINT_TABLE}{table_suffix}"

    @property
    def _table(self):
        return self._resources.get().Table(self._table_name)

    @staticmethod
    def _from_item(item: dict[str, Any]) -> Checkpoint:
        return Checkpoint(
            job_id=item["job_id"],
            step_name=item["step_name"],
            result=json.loads(item["result"]),
            created_at=item["created_at"],
        )

    def get(self, job_id: str, step_name: str) -> Optional[Checkpoint]:
        try:
            resp = self._table.get_item(
                Key={"PK": f"JOB#{job_id}", "SK": f"STEP#{step_name}"}, ConsistentRead=True,
            )
        except ClientError as exc:
            raise CheckpointError(f"Checkpoint read failed for {job_id}/{step_name}: {exc}") from exc
        item = resp.get("Item")
        return self._from_item(item) if item else None

    def put(self, job_id: str, step_name: str, result: Any) -> None:
        try:
            self._table.put_item(Item={
                "PK": f"JOB#{job_id}",
                "SK": f"STEP#{step_name}",
                "job_id": job_id,
                "step_name": step_name,
                "result": json.dumps(result),
                "created_at": utcnow().isoformat(),
            })
        except ClientError as exc:
            raise CheckpointError(f"Checkpoint write failed for {job_id}/{step_name}: {exc}") from exc

    def list_job(self, job_id: str) -> list[Checkpoint]:
        try:
            items = _query_all(self._table, KeyConditionExpression=Key("PK").eq(f"JOB#{job_id}"))
        except ClientError as exc:
            raise CheckpointError(f"Checkpoint query failed for {job_id}: {exc}") from exc
        checkpoints = [self._from_item(i) for i in items]
        return sorted(checkpoints, key=lambda c: c.created_at)
