"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the review workflow.
"""
import os


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    TASKS_TABLE = os.environ.get('TASKS_TABLE', '')
    USERS_TABLE = os.environ.get('USERS_TABLE', '')
    ORDERS_TABLE = os.environ.get('ORDERS_TABLE', '')
    AUTOMATION_SETTINGS_TABLE = os.environ.get('AUTOMATION_SETTINGS_TABLE', '')
    PENALTY_LOG_TABLE = os.environ.get('PENALTY_LOG_TABLE', '')
    WORKER_CREDITS_TABLE = os.environ.get('WORKER_CREDITS_TABLE', '')

    # Global secondary indexes on the tasks table
    TASKS_BY_DISPATCHER_INDEX = os.environ.get('TASKS_BY_DISPATCHER_INDEX', 'byDispatcher')
    TASKS_BY_ORDER_INDEX = os.environ.get('TASKS_BY_ORDER_INDEX', 'byOrder')

    # Compensation rules
    OVERDUE_PAYMENT_FACTOR = os.environ.get('OVERDUE_PAYMENT_FACTOR', '0.9')
    PENALTY_MULTIPLIER = os.environ.get('PENALTY_MULTIPLIER', '2')
    DEFAULT_PENALTY_REASON = os.environ.get('DEFAULT_PENALTY_REASON', 'Dispatcher error')

    # Optimistic salary writes (deletion reversal)
    SALARY_UPDATE_RETRIES = int(os.environ.get('SALARY_UPDATE_RETRIES', '3'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


config = Config()
