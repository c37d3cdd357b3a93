"""
Supabase backend over a stubbed SDK client
"""
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from smarttryout.backend import supabase_backend
from smarttryout.backend.supabase_backend import SupabaseBackend
from smarttryout.exceptions import BackendError
from smarttryout.services import ExamSession, SessionState

URL = 'https://project.supabase.test'
KEY = 'anon-key'


class StubQuery:
    """Query builder that records every call on its client"""

    def __init__(self, client, target):
        self.client = client
        self.target = target

    def _record(self, name):
        def call(*args, **kwargs):
            self.client.calls.append((name, args, kwargs))
            return self
        return call

    def __getattr__(self, name):
        if name in ('select', 'insert', 'update', 'upsert', 'delete', 'eq', 'in_', 'order'):
            return self._record(name)
        raise AttributeError(name)

    def execute(self):
        self.client.calls.append(('execute', (), {}))
        error = self.client.errors.get(self.target)
        if error is not None:
            raise error
        return SimpleNamespace(data=self.client.data.get(self.target))


class StubClient:
    def __init__(self):
        self.calls = []
        self.tokens = []
        self.data = {}
        self.errors = {}
        self.postgrest = SimpleNamespace(auth=self.tokens.append)

    def table(self, name):
        self.calls.append(('table', (name,), {}))
        return StubQuery(self, name)

    def rpc(self, name, params):
        self.calls.append(('rpc', (name, params), {}))
        return StubQuery(self, f'rpc:{name}')


@pytest.fixture
def stub(monkeypatch):
    client = StubClient()
    monkeypatch.setattr(supabase_backend, 'create_client', lambda url, key: client)
    return client


def api_error(message):
    return APIError({'message': message, 'code': '42501', 'hint': None, 'details': None})


def test_requires_credentials(stub):
    with pytest.raises(BackendError):
        SupabaseBackend('', KEY)


def test_access_token_is_applied(stub):
    SupabaseBackend(URL, KEY, access_token='user-jwt')
    assert stub.tokens == ['user-jwt']


def test_select_filters(stub):
    stub.data['options'] = [{'id': 'o1'}]

    rows = SupabaseBackend(URL, KEY).select(
        'options', columns='id, option_text', eq={'is_correct': True},
        in_=('question_id', ('q1', 'q2')), order_by='id', desc=True,
    )

    assert rows == [{'id': 'o1'}]
    assert stub.calls == [
        ('table', ('options',), {}),
        ('select', ('id, option_text',), {}),
        ('eq', ('is_correct', True), {}),
        ('in_', ('question_id', ['q1', 'q2']), {}),
        ('order', ('id',), {'desc': True}),
        ('execute', (), {}),
    ]


def test_empty_result_is_a_list(stub):
    assert SupabaseBackend(URL, KEY).select('exams') == []


def test_upsert_passes_conflict_columns(stub):
    row = {'attempt_id': 'a1', 'question_id': 'q1', 'selected_option_id': 'o1'}

    SupabaseBackend(URL, KEY).upsert('user_answers', [row], on_conflict='attempt_id,question_id')

    assert ('upsert', ([row],), {'on_conflict': 'attempt_id,question_id'}) in stub.calls


def test_update_and_delete_filter_by_eq(stub):
    backend = SupabaseBackend(URL, KEY)
    backend.update('exams', {'is_published': True}, eq={'id': 'e1'})
    backend.delete('exam_attempts', eq={'id': 'a1'})

    names = [name for name, args, kwargs in stub.calls]
    assert names == ['table', 'update', 'eq', 'execute', 'table', 'delete', 'eq', 'execute']


def test_api_error_becomes_backend_error(stub):
    stub.errors['exams'] = api_error('permission denied for table exams')

    with pytest.raises(BackendError) as info:
        SupabaseBackend(URL, KEY).insert('exams', [{'title': 'Matematika'}])

    assert info.value.message == 'permission denied for table exams'


def test_rpc(stub):
    stub.data['rpc:submit_exam'] = [{'final_score': 80.0}]

    assert SupabaseBackend(URL, KEY).rpc('submit_exam', {'p_attempt_id': 'a1'}) == [{'final_score': 80.0}]
    assert stub.calls[0] == ('rpc', ('submit_exam', {'p_attempt_id': 'a1'}), {})


@pytest.mark.parametrize('call', [
    lambda b: b.rpc('submit_exam', {'p_attempt_id': 'a1'}),
    lambda b: b.select('exams'),
    lambda b: b.upsert('user_answers', [{}], on_conflict='attempt_id,question_id'),
])
def test_network_failure_becomes_backend_error(stub, call):
    error = httpx.ConnectError('All connection attempts failed')
    stub.errors.update({'rpc:submit_exam': error, 'exams': error, 'user_answers': error})

    with pytest.raises(BackendError) as info:
        call(SupabaseBackend(URL, KEY))

    assert 'All connection attempts failed' in info.value.message


def test_unreachable_backend_leaves_exam_open_for_retry(stub):
    stub.data.update({
        'exam_attempts': [{'id': 'a1', 'exam_id': 'e1', 'user_id': 'u1',
                           'start_time': datetime.now(timezone.utc).isoformat(),
                           'status': 'in_progress', 'score': None}],
        'exams': [{'id': 'e1', 'title': 'Matematika', 'duration_minutes': 60}],
        'questions': [],
        'user_answers': [],
    })
    session = ExamSession('a1', 'u1', SupabaseBackend(URL, KEY))
    session.load()
    stub.errors['rpc:submit_exam'] = httpx.ConnectError('All connection attempts failed')

    with pytest.raises(BackendError):
        session.submit()

    assert session.state == SessionState.ACTIVE

    del stub.errors['rpc:submit_exam']
    stub.data['rpc:submit_exam'] = [{'final_score': 0}]
    assert session.submit() == 0.0
    assert session.state == SessionState.COMPLETED
