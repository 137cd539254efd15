"""
Shared fixtures: an in-memory replacement for ``reviewflow.store``.

The fake keeps items in plain dicts, checks the same guards the DynamoDB
calls would, and raises the same workflow errors, so the workflows can be
exercised end to end without AWS.
"""
import copy
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from boto3.dynamodb.conditions import AttributeBase, Size

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

os.environ.setdefault('AWS_REGION', 'us-east-1')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('TASKS_TABLE', 'Tasks-test')
os.environ.setdefault('USERS_TABLE', 'Users-test')
os.environ.setdefault('ORDERS_TABLE', 'Orders-test')
os.environ.setdefault('AUTOMATION_SETTINGS_TABLE', 'AutomationSettings-test')
os.environ.setdefault('PENALTY_LOG_TABLE', 'PenaltyLog-test')
os.environ.setdefault('WORKER_CREDITS_TABLE', 'WorkerCredits-test')

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

_MISSING = object()


def iso(value: datetime) -> str:
    return value.isoformat()


# -- condition evaluation -----------------------------------------------------

def _operand(item, operand):
    if isinstance(operand, Size):
        value = _operand(item, operand.get_expression()['values'][0])
        if value is _MISSING or value is None:
            return _MISSING
        return len(value)
    if isinstance(operand, AttributeBase):
        return item.get(operand.name, _MISSING)
    return operand


def _same(left, right):
    if left is _MISSING or right is _MISSING or left is None or right is None:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _has_type(value, type_name):
    if type_name == 'NULL':
        return value is None
    if type_name == 'BOOL':
        return isinstance(value, bool)
    if type_name == 'N':
        return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)
    if type_name == 'S':
        return isinstance(value, str)
    if type_name == 'L':
        return isinstance(value, list)
    if type_name == 'M':
        return isinstance(value, dict)
    raise NotImplementedError(type_name)


def evaluate(item, condition):
    """Evaluate a ``boto3.dynamodb.conditions`` object against a plain dict item."""
    expression = condition.get_expression()
    operator, values = expression['operator'], expression['values']

    if operator == 'AND':
        return evaluate(item, values[0]) and evaluate(item, values[1])
    if operator == 'OR':
        return evaluate(item, values[0]) or evaluate(item, values[1])
    if operator == 'NOT':
        return not evaluate(item, values[0])
    if operator == 'attribute_exists':
        return values[0].name in item
    if operator == 'attribute_not_exists':
        return values[0].name not in item
    if operator == 'attribute_type':
        value = _operand(item, values[0])
        return value is not _MISSING and _has_type(value, values[1])

    left = _operand(item, values[0])
    if operator == '=':
        return _same(left, _operand(item, values[1]))
    if operator == '<>':
        right = _operand(item, values[1])
        return left is not _MISSING and right is not _MISSING and not _same(left, right)
    if operator == 'IN':
        return any(_same(left, candidate) for candidate in values[1])
    raise NotImplementedError(operator)


class FakeStore:
    """Dict-backed stand-in for the functions of ``reviewflow.store``."""

    FAKED = (
        'get_task', 'update_task', 'delete_task', 'list_review_queue', 'list_order_task_ids',
        'get_user', 'add_to_user_salary', 'set_user_salary', 'credit_worker_for_task',
        'get_order', 'get_order_stage', 'get_automation_setting', 'get_order_task_list',
        'set_order_task_list', 'append_penalty_log',
    )

    def __init__(self):
        self.tasks = {}
        self.users = {}
        self.orders = {}
        self.settings = {}
        self.credits = {}
        self.penalty_log = []
        self.calls = []
        self._failures = {}

    # -- test helpers ---------------------------------------------------------

    def add_task(self, task_id=1, **attrs):
        """Seed a task row. A ``None`` value is kept as a NULL attribute."""
        item = {
            'taskId': task_id,
            'taskUuid': f'uuid-{task_id}',
            'title': f'Task {task_id}',
            'status': 'in_progress',
            'createdAt': iso(NOW - timedelta(days=2)),
            'dueDate': iso(NOW + timedelta(days=1)),
            'isLocked': False,
            'salary': Decimal('1000'),
            'responsibleUserId': 'worker-1',
            'dispatcherId': 'dispatcher-1',
            'dispatcherPercentage': Decimal('10'),
        }
        item.update(attrs)
        self.tasks[task_id] = item
        return self.tasks[task_id]

    def add_user(self, user_id, salary='0', **attrs):
        self.users[user_id] = {'userId': user_id, 'salary': Decimal(salary), 'completedTasks': [], **attrs}
        return self.users[user_id]

    def add_order(self, order_id, stage='editing', task_ids=None, **attrs):
        self.orders[order_id] = {'orderId': order_id, 'status': stage, 'taskIds': list(task_ids or []), **attrs}
        return self.orders[order_id]

    def add_setting(self, stage, dispatcher_id, percentage='10'):
        self.settings[stage] = {'dispatcher_id': dispatcher_id, 'dispatcher_percentage': Decimal(percentage)}

    def fail(self, name, error, skip=0, times=1):
        """Make ``name`` raise ``error`` after ``skip`` successful calls, ``times`` times."""
        self._failures[name] = [skip, times, error]

    def salary(self, user_id):
        return self.users[user_id]['salary']

    def _check(self, name):
        self.calls.append(name)
        failure = self._failures.get(name)
        if not failure:
            return
        if failure[0] > 0:
            failure[0] -= 1
            return
        if failure[1] > 0:
            failure[1] -= 1
            raise failure[2]

    # -- tasks ----------------------------------------------------------------

    def get_task(self, task_id):
        self._check('get_task')
        item = self.tasks.get(task_id)
        return copy.deepcopy(item) if item else None

    def update_task(self, task_id, fields=None, remove=None, condition=None):
        from reviewflow.errors import ConditionFailedError

        self._check('update_task')
        if not fields and not remove:
            raise ValueError('update_task needs at least one attribute to change')
        item = self.tasks.get(task_id)
        if item is None or (condition is not None and not evaluate(item, condition)):
            raise ConditionFailedError('update_item on Tasks-test: condition not met')

        item.update(copy.deepcopy(fields or {}))
        for attr in remove or []:
            item.pop(attr, None)
        return copy.deepcopy(item)

    def delete_task(self, task_id):
        self._check('delete_task')
        self.tasks.pop(task_id, None)

    def list_review_queue(self, dispatcher_id):
        self._check('list_review_queue')
        return [
            copy.deepcopy(item) for item in self.tasks.values()
            if item.get('dispatcherId') == dispatcher_id and item.get('status') == 'under_review'
        ]

    def list_order_task_ids(self, order_id):
        self._check('list_order_task_ids')
        return [item['taskId'] for item in self.tasks.values() if item.get('orderId') == order_id]

    # -- users ----------------------------------------------------------------

    def get_user(self, user_id):
        self._check('get_user')
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    def add_to_user_salary(self, user_id, delta):
        from reviewflow.errors import NotFoundError

        self._check('add_to_user_salary')
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f'User {user_id} not found')
        user['salary'] = user.get('salary', Decimal('0')) + delta
        return user['salary']

    def set_user_salary(self, user_id, new_salary, completed_tasks=None, expected_salary=None):
        from reviewflow.errors import ConditionFailedError

        self._check('set_user_salary')
        user = self.users.get(user_id)
        if user is None:
            raise ConditionFailedError('update_item on Users-test: condition not met')
        if expected_salary is not None and user.get('salary', Decimal('0')) != expected_salary:
            raise ConditionFailedError('update_item on Users-test: condition not met')
        user['salary'] = new_salary
        if completed_tasks is not None:
            user['completedTasks'] = copy.deepcopy(completed_tasks)

    def credit_worker_for_task(self, worker_id, task_id, payment, has_penalty):
        from reviewflow.errors import NotFoundError

        self._check('credit_worker_for_task')
        if task_id in self.credits:
            return False
        user = self.users.get(worker_id)
        if user is None:
            raise NotFoundError(f'Worker {worker_id} not found')
        self.credits[task_id] = {'workerId': worker_id, 'payment': payment, 'hasPenalty': has_penalty}
        user['salary'] = user.get('salary', Decimal('0')) + payment
        user.setdefault('completedTasks', []).append({
            'task_id': task_id,
            'payment': payment,
            'has_penalty': has_penalty,
            'completed_at': iso(NOW),
        })
        return True

    # -- orders & automation --------------------------------------------------

    def get_order(self, order_id):
        self._check('get_order')
        order = self.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def get_order_stage(self, order_id):
        self._check('get_order_stage')
        order = self.orders.get(order_id)
        return order.get('status') if order else None

    def get_automation_setting(self, stage_id):
        self._check('get_automation_setting')
        setting = self.settings.get(stage_id)
        return dict(setting) if setting else None

    def get_order_task_list(self, order_id):
        self._check('get_order_task_list')
        order = self.orders.get(order_id)
        return list(order.get('taskIds') or []) if order else None

    def set_order_task_list(self, order_id, task_ids, expected=None):
        from reviewflow.errors import ConditionFailedError

        self._check('set_order_task_list')
        order = self.orders.get(order_id)
        if order is None or (expected is not None and list(order.get('taskIds') or []) != list(expected)):
            raise ConditionFailedError('update_item on Orders-test: condition not met')
        order['taskIds'] = list(task_ids)

    # -- penalty log ----------------------------------------------------------

    def append_penalty_log(self, entry):
        self._check('append_penalty_log')
        self.penalty_log.append(entry.to_item())


@pytest.fixture
def fake_store(monkeypatch):
    """Replace every ``reviewflow.store`` call with the in-memory fake."""
    from reviewflow import store

    fake = FakeStore()
    for name in FakeStore.FAKED:
        monkeypatch.setattr(store, name, getattr(fake, name))
    return fake


@pytest.fixture
def now():
    return NOW


def make_event(sub='worker-1', groups='worker', task_id=None, body=None, query=None):
    """API Gateway proxy event with Cognito authorizer claims."""
    import json

    event = {
        'httpMethod': 'POST',
        'requestContext': {'authorizer': {'claims': {'sub': sub, 'cognito:groups': groups}}},
        'pathParameters': {'taskId': str(task_id)} if task_id is not None else None,
        'queryStringParameters': query,
        'body': json.dumps(body) if body is not None else None,
    }
    if sub is None:
        event['requestContext'] = {}
    return event
