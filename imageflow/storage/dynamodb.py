import boto3
from typing import Optional, Dict, Any, List
from botocore.exceptions import ClientError
from imageflow.settings import Settings
import logging

log = logging.getLogger(__name__)

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    def __init__(self, settings: Settings):
        self.table_name = settings.dynamodb_table
        self.cache_table_name = settings.cache_table
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.resource = session.resource("dynamodb", **kwargs)
        log.info("Initialized DynamoDB resource")

        # Ensure tables exist at initialization
        self.ensure_table(self.table_name, "image_id")
        self.ensure_table(self.cache_table_name, "cache_key")

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self, table_name: str, hash_key: str):
        try:
            table = self.resource.Table(table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": hash_key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": hash_key, "AttributeType": "S"}],
                ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
            )
            table.wait_until_exists()
            log.info("Created table %s", table_name)

    def put_metadata(self, item: Dict[str, Any]):
        table = self.resource.Table(self.table_name)
        table.put_item(Item=item)
        log.debug("Inserted metadata %s", item.get("image_id"))

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        table = self.resource.Table(self.table_name)
        resp = table.get_item(Key={"image_id": image_id})
        return resp.get("Item")

    def delete_metadata(self, image_id: str):
        table = self.resource.Table(self.table_name)
        table.delete_item(Key={"image_id": image_id})
        log.debug("Deleted metadata %s", image_id)

    def scan_metadata(
        self,
        filter_expression=None,
        limit: int = 50,
        exclusive_start_key: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """One scan page. `filter_expression` is a boto3 condition."""
        table = self.resource.Table(self.table_name)
        scan_kwargs = {"Limit": limit}
        if exclusive_start_key:
            scan_kwargs["ExclusiveStartKey"] = exclusive_start_key
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression
        return table.scan(**scan_kwargs)

    def scan_all(self, filter_expression=None) -> List[Dict[str, Any]]:
        """Follows LastEvaluatedKey until the whole table has been read."""
        table = self.resource.Table(self.table_name)
        scan_kwargs = {}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression
        items = []
        while True:
            resp = table.scan(**scan_kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            scan_kwargs["ExclusiveStartKey"] = last_key

    def close(self):
        log.info("Closed DynamoDB resource")
