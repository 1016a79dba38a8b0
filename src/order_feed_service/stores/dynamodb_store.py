"""DynamoDB-backed document store.

Each collection maps to one DynamoDB table keyed by "id". The change feed is
emulated by polling: every subscription owns a task that scans its table,
applies the query filter, and publishes the diff against the previous scan.
One task per subscription keeps deliveries for that subscription in order.
"""

import asyncio
import logging
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from order_feed_service.errors import (
    RecordConflictError,
    RecordNotFoundError,
    StoreUnavailableError,
)
from order_feed_service.feed.subscription import Subscription, diff_snapshots
from order_feed_service.models.feed_models import DocumentSnapshot, FeedQuery
from order_feed_service.stores.base_store import DocumentStore, new_record_id

logger = logging.getLogger(__name__)


class DynamoDBDocumentStore(DocumentStore):
    """Document store over DynamoDB tables."""

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        table_names: dict[str, str],
        poll_interval_seconds: float = 2.0,
    ) -> None:
        """Initialize the store.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_names: Mapping of collection name to DynamoDB table name
            poll_interval_seconds: Delay between change feed scans
        """
        self.dynamodb = dynamodb_resource
        self.table_names = table_names
        self.poll_interval_seconds = poll_interval_seconds
        self._tables: dict[str, Table] = {}
        self._pollers: dict[int, asyncio.Task[None]] = {}

    def _table(self, collection: str) -> Table:
        if collection not in self._tables:
            table_name = self.table_names.get(collection, collection)
            self._tables[collection] = self.dynamodb.Table(table_name)
        return self._tables[collection]

    def subscribe(self, query: FeedQuery) -> Subscription:
        """Open a polling subscription. Must be called from a running event loop."""
        subscription = Subscription(query, on_close=self._release)
        self._pollers[id(subscription)] = asyncio.create_task(self._poll(subscription))
        logger.info(f"Polling {query.collection} every {self.poll_interval_seconds}s")
        return subscription

    async def create(self, collection: str, record: dict[str, Any]) -> str:
        record_id = record.get("id") or new_record_id()
        item = {**record, "id": record_id}

        try:
            await asyncio.to_thread(
                self._table(collection).put_item,
                Item=item,
                ConditionExpression="attribute_not_exists(id)",
            )
        except ClientError as e:
            logger.error(f"Failed to create {collection} record: {e}")
            raise StoreUnavailableError(f"Failed to create {collection} record") from e

        return record_id

    async def update(
        self,
        collection: str,
        record_id: str,
        partial: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        fields = {k: v for k, v in partial.items() if k != "id"}
        if not fields:
            return

        names = {f"#f{i}": name for i, name in enumerate(fields)}
        values = {f":v{i}": value for i, value in enumerate(fields.values())}
        assignments = ", ".join(f"#f{i} = :v{i}" for i in range(len(fields)))

        conditions = ["attribute_exists(id)"]
        for i, (name, value) in enumerate((expected or {}).items()):
            names[f"#e{i}"] = name
            values[f":e{i}"] = value
            conditions.append(f"#e{i} = :e{i}")

        kwargs: dict[str, Any] = {
            "Key": {"id": record_id},
            "UpdateExpression": f"SET {assignments}",
            "ConditionExpression": " AND ".join(conditions),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }
        if expected:
            # Lets a failed check tell a changed record apart from a missing one
            kwargs["ReturnValuesOnConditionCheckFailure"] = "ALL_OLD"

        try:
            await asyncio.to_thread(self._table(collection).update_item, **kwargs)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                if expected and "Item" in e.response:
                    raise RecordConflictError(collection, record_id) from e
                raise RecordNotFoundError(collection, record_id) from e
            logger.error(f"Failed to update {collection} record {record_id}: {e}")
            raise StoreUnavailableError(f"Failed to update {collection} record") from e

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        try:
            response = await asyncio.to_thread(
                self._table(collection).get_item, Key={"id": record_id}
            )
        except ClientError as e:
            logger.error(f"Failed to get {collection} record {record_id}: {e}")
            raise StoreUnavailableError(f"Failed to read {collection} record") from e

        if "Item" not in response:
            return None

        return dict(response["Item"])

    async def scan(self, collection: str) -> list[dict[str, Any]]:
        """Read every record in a collection, following pagination.

        Args:
            collection: Collection to scan

        Returns:
            list: Records ordered by creation time, then id

        Raises:
            StoreUnavailableError: If the scan fails
        """
        table = self._table(collection)
        records: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {}

        try:
            while True:
                response = await asyncio.to_thread(table.scan, **kwargs)
                records.extend(dict(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            logger.error(f"Failed to scan {collection}: {e}")
            raise StoreUnavailableError(f"Failed to scan {collection}") from e

        records.sort(key=lambda r: (str(r.get("created_at", "")), str(r["id"])))
        return records

    async def _poll(self, subscription: Subscription) -> None:
        query = subscription.query
        previous: dict[str, dict[str, Any]] | None = None

        while subscription.active:
            try:
                records = await self.scan(query.collection)
            except StoreUnavailableError:
                logger.warning(f"Change feed scan of {query.collection} failed, will retry")
            else:
                current = {r["id"]: r for r in records if query.matches(r)}
                changes = diff_snapshots(previous or {}, current)

                if previous is None or changes:
                    subscription.publish(
                        DocumentSnapshot(documents=list(current.values()), changes=changes)
                    )
                previous = current

            await asyncio.sleep(self.poll_interval_seconds)

    def _release(self, subscription: Subscription) -> None:
        task = self._pollers.pop(id(subscription), None)
        if task is not None:
            task.cancel()
