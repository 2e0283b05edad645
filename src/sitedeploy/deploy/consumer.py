"""Queue consumer: the deployment worker's main loop.

Messages are deleted only after a successful build. Anything else leaves the
message in the queue, where it becomes visible again once its visibility
window expires and is redelivered.
"""

from __future__ import annotations

import asyncio
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from sitedeploy.deploy.dispatcher import BuildDispatcher
from sitedeploy.lib.aws import create_client
from sitedeploy.lib.errors import DeploymentError, TaskPayloadError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import WorkerConfig
from sitedeploy.models.deployment import DeploymentTask, Outcome, QueueMessage

logger = get_logger(__name__)


class QueueConsumer:
    """Long-polls the task queue and drives each task through the dispatcher."""

    def __init__(
        self,
        config: WorkerConfig,
        dispatcher: BuildDispatcher,
        sqs_client: Any | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            config: Worker configuration
            dispatcher: Dispatcher used for every task
            sqs_client: Optional boto3 SQS client (created from config if None)
        """
        self._config = config
        self._dispatcher = dispatcher
        self._sqs = sqs_client or create_client(config.aws, "sqs")
        self.queue_url = config.queue_url

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll until ``stop_event`` is set. Errors never end the loop."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Deployment worker started. Polling {self.queue_url}")

        while not stop_event.is_set():
            try:
                await self.poll_once(cancel_event=stop_event)
            except Exception:
                logger.exception("Error in polling loop")
                await self._backoff(stop_event)

        logger.info("Deployment worker stopped")

    async def poll_once(
        self, cancel_event: asyncio.Event | None = None
    ) -> Outcome | None:
        """Receive and process at most one message.

        Returns:
            The outcome for the processed message, or None if nothing was
            processed

        Raises:
            DeploymentError: If the queue cannot be reached or a delete fails
        """
        message = await self.receive()
        if message is None:
            logger.info("No new messages. Re-polling...")
            return None

        if not message.receipt_handle:
            logger.error(
                f"Received message {message.message_id} with no receipt handle. "
                "Cannot delete, skipping."
            )
            return None

        logger.info(
            f"--- Message {message.message_id} received "
            f"(delivery {message.receive_count}) ---"
        )

        max_receives = self._config.consumer.max_receive_count
        if max_receives is not None and message.receive_count > max_receives:
            outcome = Outcome.abandoned(
                f"delivered {message.receive_count} times (limit {max_receives})"
            )
            logger.error(
                f"Abandoning message {message.message_id}: {outcome.reason}. "
                f"Body: {message.body!r}"
            )
            await self.delete(message)
            return outcome

        if not message.body:
            logger.warning(f"Message {message.message_id} has no body, deleting")
            await self.delete(message)
            return Outcome.success()

        outcome = await self.process(message.body, cancel_event=cancel_event)
        if outcome.ok:
            await self.delete(message)
            logger.info(f"Message {message.message_id} processed and deleted")
        else:
            logger.warning(
                f"Message {message.message_id} left for redelivery "
                f"({outcome.kind.value}: {outcome.reason})"
            )
        return outcome

    async def process(
        self, body: str, cancel_event: asyncio.Event | None = None
    ) -> Outcome:
        """Parse a message body and build the task it describes."""
        try:
            task = DeploymentTask.from_body(body)
        except TaskPayloadError as exc:
            logger.error(f"Malformed task payload {body!r}: {exc.message}")
            return Outcome.failure("malformed task payload")

        logger.info(f"Building {task.id} from {task.repo_url or 'unknown source'}")
        try:
            return await self._dispatcher.dispatch(task.id, cancel_event=cancel_event)
        except Exception as exc:
            logger.exception(f"Build failed for {task.id}")
            return Outcome.failure(str(exc))

    async def receive(self) -> QueueMessage | None:
        """Long-poll the queue for a single message."""
        try:
            response = await asyncio.to_thread(
                self._sqs.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self._config.consumer.wait_time_seconds,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (BotoCoreError, ClientError) as exc:
            raise DeploymentError(
                operation="queue", message=f"Failed to receive messages: {exc}"
            ) from exc

        messages = response.get("Messages") or []
        if not messages:
            return None
        return QueueMessage.from_sqs(messages[0])

    async def delete(self, message: QueueMessage) -> None:
        """Acknowledge a delivery by deleting it with its receipt handle."""
        try:
            await asyncio.to_thread(
                self._sqs.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=message.receipt_handle,
            )
        except (BotoCoreError, ClientError) as exc:
            raise DeploymentError(
                operation="queue",
                message=f"Failed to delete message {message.message_id}: {exc}",
            ) from exc

    async def _backoff(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(
                stop_event.wait(), timeout=self._config.consumer.error_backoff_seconds
            )
        except asyncio.TimeoutError:
            pass
