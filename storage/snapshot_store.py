"""Snapshot stores persisting the latest sync result for the website and the next run."""
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import PersistenceError
from processor.models import Snapshot, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = 'data/scraped-events.json'
DEFAULT_MAX_AGE = timedelta(hours=23)


def snapshot_from_json(text: str) -> Snapshot:
    """
    Decode a snapshot document.

    Raises:
        ValueError: If the text is not a JSON object
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError('Snapshot document is not a JSON object')
    return Snapshot.from_dict(data)


def snapshot_to_json(snapshot: Snapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)


def is_stale(snapshot: Optional[Snapshot], now: datetime,
             max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """
    Decide whether a new run is due.

    Args:
        snapshot: Last persisted snapshot, if any
        now: Current time (aware)
        max_age: Age after which the snapshot is considered stale

    Returns:
        True if there is no usable snapshot or it is at least max_age old
    """
    if snapshot is None:
        return True
    scraped_at = parse_timestamp(snapshot.scraped_at)
    if scraped_at is None:
        return True
    age = now - scraped_at
    logger.info(f"Hours since last scrape: {age.total_seconds() / 3600:.1f}")
    return age >= max_age


class FileSnapshotStore:
    """Snapshot kept in a JSON file on the local file system."""

    def __init__(self, path: str = DEFAULT_SNAPSHOT_PATH):
        self.path = path

    def load(self) -> Optional[Snapshot]:
        """
        Read the persisted snapshot.

        Returns:
            Snapshot, or None when the file is missing or corrupt
        """
        if not os.path.exists(self.path):
            logger.info(f"No snapshot found at {self.path}, starting fresh")
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                snapshot = snapshot_from_json(f.read())
        except (OSError, ValueError) as e:
            logger.warning(f"Unable to read snapshot {self.path}, starting fresh: {e}")
            return None

        logger.info(
            f"Loaded snapshot with {len(snapshot.upcoming_events)} upcoming and "
            f"{len(snapshot.past_events)} past events"
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        """
        Atomically replace the persisted snapshot.

        Raises:
            PersistenceError: If the file cannot be written
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix='.snapshot-', suffix='.json'
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(snapshot_to_json(snapshot))
                f.write('\n')
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.error(f"Failed to write snapshot {self.path}: {e}")
            raise PersistenceError(f"Failed to write snapshot {self.path}: {e}") from e

        logger.info(f"Saved snapshot to {self.path}")


class S3SnapshotStore:
    """Snapshot kept as a JSON object in S3, for deployments without a persistent disk."""

    def __init__(self, bucket: str, key: str = 'scraped-events.json', client=None):
        """
        Initialize the S3 client.

        Args:
            bucket: Bucket holding the snapshot
            key: Object key of the snapshot document
            client: Optional boto3 S3 client
        """
        self.bucket = bucket
        self.key = key
        self.s3 = client or boto3.client('s3')
        logger.info(f"Initialized S3SnapshotStore for s3://{bucket}/{key}")

    def load(self) -> Optional[Snapshot]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
            body = response['Body'].read().decode('utf-8')
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in ('NoSuchKey', '404', 'NoSuchBucket'):
                logger.info(f"No snapshot at s3://{self.bucket}/{self.key}, starting fresh")
            else:
                logger.warning(f"Error reading snapshot from S3, starting fresh: {e}")
            return None
        except BotoCoreError as e:
            logger.warning(f"Error reading snapshot from S3, starting fresh: {e}")
            return None

        try:
            return snapshot_from_json(body)
        except ValueError as e:
            logger.warning(f"Corrupt snapshot in S3, starting fresh: {e}")
            return None

    def save(self, snapshot: Snapshot) -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=snapshot_to_json(snapshot).encode('utf-8'),
                ContentType='application/json',
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to write snapshot to S3: {e}")
            raise PersistenceError(f"Failed to write snapshot to S3: {e}") from e

        logger.info(f"Saved snapshot to s3://{self.bucket}/{self.key}")
