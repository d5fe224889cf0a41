"""AWS SQS-backed job queue."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from fanout_jobs.models import Message, QueueMetrics
from fanout_jobs.queue.base import JobQueue

# SQS hard limits
MAX_MESSAGES_PER_RECEIVE = 10
MAX_VISIBILITY_TIMEOUT = 43200

logger = logging.getLogger(__name__)


class SQSJobQueue(JobQueue):
    """
    Job queue on top of an SQS queue.

    SQS supplies the visibility timeout and ``ApproximateReceiveCount`` used
    as ``delivery_count``. Deletes need the receipt handle of the latest
    receive, which travels on ``Message.receipt``; acking by id alone is a
    no-op.

    A body that cannot be parsed still comes back as a message, with empty
    ``tenant_id`` and ``job_key`` and the raw text in ``payload["raw_body"]``,
    so it is dead-lettered once its attempts run out.

    boto3 is blocking, so calls run in a worker thread.

    Example:
        ```python
        queue = SQSJobQueue(
            queue_url="https://sqs.us-east-1.amazonaws.com/123/tenant-jobs",
            region_name="us-east-1",
        )
        message_id = await queue.enqueue("tenant-1", "2026-10-11")
        ```
    """

    def __init__(
        self,
        queue_url: str,
        name: Optional[str] = None,
        sqs_client: Any = None,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """
        Initialize SQS queue.

        Args:
            queue_url: URL of the SQS queue
            name: Queue name used in logs and metrics (defaults to the URL tail)
            sqs_client: Existing boto3 SQS client; created if not provided
            region_name: AWS region for a new client
            endpoint_url: Optional endpoint URL for local testing (e.g., LocalStack)
        """
        self.queue_url = queue_url
        self.name = name or queue_url.rstrip("/").rsplit("/", 1)[-1]

        if sqs_client is None:
            client_kwargs = {}
            if region_name:
                client_kwargs["region_name"] = region_name
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            sqs_client = boto3.client("sqs", **client_kwargs)

        self.sqs = sqs_client

    async def enqueue(
        self,
        tenant_id: str,
        job_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        body = json.dumps(
            {
                "tenant_id": tenant_id,
                "job_key": job_key,
                "enqueued_at": datetime.now(timezone.utc).isoformat(),
                "payload": payload or {},
            }
        )
        response = await asyncio.to_thread(
            self.sqs.send_message,
            QueueUrl=self.queue_url,
            MessageBody=body,
        )
        return response["MessageId"]

    async def read_batch(self, max_count: int, visibility_timeout: float) -> List[Message]:
        messages: List[Message] = []

        while len(messages) < max_count:
            wanted = min(max_count - len(messages), MAX_MESSAGES_PER_RECEIVE)
            response = await asyncio.to_thread(
                self.sqs.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=wanted,
                WaitTimeSeconds=0,
                VisibilityTimeout=min(int(visibility_timeout), MAX_VISIBILITY_TIMEOUT),
                AttributeNames=["ApproximateReceiveCount", "SentTimestamp"],
            )

            received = response.get("Messages", [])
            messages.extend(self._parse(raw) for raw in received)

            if len(received) < wanted:
                break

        return messages

    async def ack(self, message_id: str, receipt: Optional[str] = None) -> None:
        if not receipt or receipt == message_id:
            logger.warning(f"No receipt handle known for SQS message {message_id}, ignoring ack")
            return

        try:
            await asyncio.to_thread(
                self.sqs.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=receipt,
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ReceiptHandleIsInvalid", "InvalidParameterValue"):
                logger.warning(f"SQS message {message_id} already gone ({code})")
            else:
                raise

    async def metrics(self) -> QueueMetrics:
        response = await asyncio.to_thread(
            self.sqs.get_queue_attributes,
            QueueUrl=self.queue_url,
            AttributeNames=[
                "ApproximateNumberOfMessages",
                "ApproximateNumberOfMessagesNotVisible",
                "ApproximateNumberOfMessagesDelayed",
            ],
        )
        attributes = response.get("Attributes", {})
        pending = sum(
            int(attributes.get(name, 0))
            for name in (
                "ApproximateNumberOfMessages",
                "ApproximateNumberOfMessagesNotVisible",
                "ApproximateNumberOfMessagesDelayed",
            )
        )
        # Oldest-message age is only published to CloudWatch.
        return QueueMetrics(pending_count=pending, oldest_age=None)

    def _parse(self, raw: Dict[str, Any]) -> Message:
        attributes = raw.get("Attributes", {})
        delivery_count = int(attributes.get("ApproximateReceiveCount", 1))

        try:
            body = json.loads(raw["Body"])
            tenant_id = body["tenant_id"]
            job_key = body["job_key"]
            enqueued_at = body.get("enqueued_at")
            enqueued_at = datetime.fromisoformat(enqueued_at) if enqueued_at else None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.error(
                f"Malformed SQS message {raw.get('MessageId')} "
                f"(receive count {delivery_count})"
            )
            return Message(
                message_id=raw["MessageId"],
                tenant_id="",
                job_key="",
                enqueued_at=None,
                delivery_count=delivery_count,
                payload={"raw_body": raw.get("Body")},
                receipt=raw["ReceiptHandle"],
            )

        return Message(
            message_id=raw["MessageId"],
            tenant_id=tenant_id,
            job_key=job_key,
            enqueued_at=enqueued_at,
            delivery_count=delivery_count,
            payload=body.get("payload") or {},
            receipt=raw["ReceiptHandle"],
        )
