"""
    Image records in DynamoDB: save, get, delete, random selection under
    tag/orientation filters, expiry scan and paged listing.
"""
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging
import random

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from imageflow.storage.dynamodb import DynamoDBService
from imageflow.image_service.models import ImageRecord, Orientation, SelectionFilter
from imageflow.exceptions import DynamoDBException, ImageNotFoundException

log = logging.getLogger(__name__)

def normalize_tags(raw: Optional[str]) -> List[str]:
    """Comma separated tags, trimmed and lower-cased, first occurrence kept."""
    tags = []
    for tag in (raw or "").split(","):
        tag = tag.strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags

def save_record(db: DynamoDBService, record: ImageRecord):
    try:
        db.put_metadata(record.to_item())
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB put_metadata failed: {e}")
        raise DynamoDBException()
    log.info("Saved image metadata %s", record.image_id)

def get_record(db: DynamoDBService, image_id: str) -> ImageRecord:
    try:
        item = db.get_metadata(image_id)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB get_metadata failed: {e}")
        raise DynamoDBException()
    if not item:
        raise ImageNotFoundException(image_id)
    return ImageRecord.from_item(item)

def delete_record(db: DynamoDBService, image_id: str):
    try:
        db.delete_metadata(image_id)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB delete_metadata failed: {e}")
        raise DynamoDBException()

def selection_condition(
    tags: List[str] = (),
    exclude: List[str] = (),
    orientation: Optional[Orientation] = None,
):
    """boto3 condition matching every tag in `tags`, none in `exclude`, and the orientation."""
    conditions = []
    if orientation is not None:
        conditions.append(Attr("orientation").eq(orientation.value))
    conditions.extend(Attr("tags").contains(t) for t in tags)
    conditions.extend(~Attr("tags").contains(t) for t in exclude)
    cond = None
    for c in conditions:
        cond = c if cond is None else cond & c
    return cond

def select_random(db: DynamoDBService, selection: SelectionFilter) -> Optional[ImageRecord]:
    cond = selection_condition(selection.tags, selection.exclude, selection.orientation)
    try:
        items = db.scan_all(cond)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB scan failed: {e}")
        raise DynamoDBException()
    if not items:
        return None
    return ImageRecord.from_item(random.choice(items))

def list_expired(db: DynamoDBService, now: datetime) -> List[ImageRecord]:
    try:
        items = db.scan_all(Attr("expiry_epoch").lt(int(now.timestamp())))
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB expiry scan failed: {e}")
        raise DynamoDBException()
    return [ImageRecord.from_item(it) for it in items]

def fetch_images(
    db: DynamoDBService,
    tag: Optional[str] = None,
    orientation: Optional[Orientation] = None,
    limit: int = 50,
    exclusive_start_key: Optional[Dict[str, str]] = None,
) -> Tuple[List[ImageRecord], Optional[Dict[str, str]]]:
    """One page of records with optional filters, plus the key to continue from."""
    cond = selection_condition([tag] if tag else [], [], orientation)
    try:
        resp = db.scan_metadata(filter_expression=cond, limit=limit, exclusive_start_key=exclusive_start_key)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB fetch_images failed: {e}")
        raise DynamoDBException()
    records = [ImageRecord.from_item(it) for it in resp.get("Items", [])]
    return records, resp.get("LastEvaluatedKey")

def count_tags(db: DynamoDBService) -> List[Tuple[str, int]]:
    try:
        items = db.scan_all()
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB count_tags failed: {e}")
        raise DynamoDBException()
    counts = Counter(tag for it in items for tag in it.get("tags", []))
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
