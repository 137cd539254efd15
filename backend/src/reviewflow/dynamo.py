"""
DynamoDB utility functions.

Thin wrappers around the boto3 table resource that log failures and
re-raise them as workflow errors, so callers see which call failed
instead of a silent ``None``.
"""
import boto3
from typing import List, Dict, Any, Optional, Union
from boto3.dynamodb.conditions import ConditionBase
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from .config import config
from .errors import StoreError, ConditionFailedError
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)

_serializer = TypeSerializer()


def _raise_store_error(action: str, table_name: str, error: ClientError):
    code = error.response.get('Error', {}).get('Code', '')
    message = error.response.get('Error', {}).get('Message', str(error))
    if code == 'ConditionalCheckFailedException':
        logger.info(f"Condition failed on {action} in {table_name}")
        raise ConditionFailedError(f"{action} on {table_name}: condition not met") from error
    logger.error(f"Error on {action} in {table_name}: {code} {message}")
    raise StoreError(f"{action} on {table_name} failed: {message}") from error


def get_item(table_name: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB. Returns None when the key is absent."""
    try:
        table = dynamodb.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=True)
        return response.get('Item')
    except ClientError as e:
        _raise_store_error('get_item', table_name, e)


def put_item(
    table_name: str,
    item: Dict[str, Any],
    condition_expression: Optional[Union[str, ConditionBase]] = None,
    expression_names: Optional[Dict[str, str]] = None
) -> None:
    """Put an item, optionally guarded by a condition expression."""
    params = {'Item': item}
    if condition_expression is not None:
        params['ConditionExpression'] = condition_expression
    if expression_names:
        params['ExpressionAttributeNames'] = expression_names

    try:
        dynamodb.Table(table_name).put_item(**params)
    except ClientError as e:
        _raise_store_error('put_item', table_name, e)


def update_item(
    table_name: str,
    key: Dict[str, Any],
    update_expression: str,
    expression_values: Optional[Dict[str, Any]] = None,
    expression_names: Optional[Dict[str, str]] = None,
    condition_expression: Optional[Union[str, ConditionBase]] = None,
    return_values: str = 'NONE'
) -> Dict[str, Any]:
    """
    Update an item in DynamoDB.

    Args:
        table_name: Name of the DynamoDB table
        key: Primary key of the item
        update_expression: SET/ADD/REMOVE expression
        expression_values: Values referenced as ``:name``
        expression_names: Attribute names referenced as ``#name``
        condition_expression: Optional guard; a failed guard raises ConditionFailedError
        return_values: DynamoDB ReturnValues option

    Returns:
        The ``Attributes`` map of the response (empty unless requested)
    """
    params = {
        'Key': key,
        'UpdateExpression': update_expression,
        'ReturnValues': return_values
    }
    if expression_values:
        params['ExpressionAttributeValues'] = expression_values
    if expression_names:
        params['ExpressionAttributeNames'] = expression_names
    if condition_expression is not None:
        params['ConditionExpression'] = condition_expression

    try:
        response = dynamodb.Table(table_name).update_item(**params)
        return response.get('Attributes', {})
    except ClientError as e:
        _raise_store_error('update_item', table_name, e)


def delete_item(table_name: str, key: Dict[str, Any]) -> None:
    """Delete a single item from DynamoDB."""
    try:
        dynamodb.Table(table_name).delete_item(Key=key)
    except ClientError as e:
        _raise_store_error('delete_item', table_name, e)


def query(
    table_name: str,
    index_name: Optional[str] = None,
    key_condition: Optional[Any] = None,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True
) -> List[Dict[str, Any]]:
    """
    Query DynamoDB table or index, following pagination.

    Args:
        table_name: Name of the DynamoDB table
        index_name: Optional GSI name
        key_condition: Key condition expression
        filter_expression: Optional filter expression
        limit: Max items to return
        scan_forward: True for ascending, False for descending

    Returns:
        List of items matching the query
    """
    table = dynamodb.Table(table_name)

    query_params = {
        'ScanIndexForward': scan_forward
    }

    if index_name:
        query_params['IndexName'] = index_name
    if key_condition is not None:
        query_params['KeyConditionExpression'] = key_condition
    if filter_expression is not None:
        query_params['FilterExpression'] = filter_expression

    items = []
    try:
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            query_params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        _raise_store_error('query', table_name, e)

    return items[:limit] if limit else items


def serialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item into the low-level typed attribute format."""
    return {k: _serializer.serialize(v) for k, v in item.items()}


def transact_write(transact_items: List[Dict[str, Any]]) -> None:
    """
    Run a low-level ``transact_write_items`` call.

    Raises ClientError untouched so callers can inspect the
    per-item CancellationReasons of a TransactionCanceledException.
    """
    dynamodb.meta.client.transact_write_items(TransactItems=transact_items)
