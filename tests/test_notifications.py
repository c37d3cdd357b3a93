import httpx

from smarttryout.services import TeacherNotifier

ATTEMPT = {'id': 'attempt-1', 'exam_id': 'exam-1', 'user_id': 'student-1'}


class Recorder:
    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response
        self.error = error

    def __call__(self, url, json=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.response


def ok_response(url):
    return httpx.Response(200, request=httpx.Request('POST', url))


def test_payload_and_headers(fake_backend, monkeypatch):
    url = 'https://hooks.example.test/notify-teacher'
    post = Recorder(response=ok_response(url))
    monkeypatch.setattr(httpx, 'post', post)

    TeacherNotifier(fake_backend, url, token='anon-key', timeout=3).dispatch(ATTEMPT, 80.0)

    assert post.calls == [{
        'url': url,
        'json': {
            'teacher_id': 'teacher-1',
            'teacher_name': 'Bu Ani',
            'student_name': 'Budi',
            'exam_title': 'Matematika',
            'score': 80.0,
        },
        'headers': {'Authorization': 'Bearer anon-key'},
        'timeout': 3,
    }]


def test_missing_profiles_use_defaults(fake_backend):
    fake_backend.tables['profiles'].clear()

    payload = TeacherNotifier(fake_backend, 'https://x.test').build_payload(ATTEMPT, 10.0)

    assert payload['teacher_name'] == 'Teacher'
    assert payload['student_name'] == 'Student'


def test_network_failure_is_logged_not_raised(fake_backend, monkeypatch, caplog):
    monkeypatch.setattr(httpx, 'post', Recorder(error=httpx.ConnectError('connection refused')))

    TeacherNotifier(fake_backend, 'https://x.test').dispatch(ATTEMPT, 80.0)

    assert 'non-critical' in caplog.text


def test_error_status_is_logged(fake_backend, monkeypatch, caplog):
    url = 'https://x.test'
    response = httpx.Response(500, text='boom', request=httpx.Request('POST', url))
    monkeypatch.setattr(httpx, 'post', Recorder(response=response))

    TeacherNotifier(fake_backend, url).dispatch(ATTEMPT, 80.0)

    assert 'Teacher notification failed: 500' in caplog.text


def test_backend_failure_while_building_payload(fake_backend, monkeypatch, backend_error):
    post = Recorder()
    monkeypatch.setattr(httpx, 'post', post)
    fake_backend.failures[('select', 'exams')] = backend_error

    TeacherNotifier(fake_backend, 'https://x.test').dispatch(ATTEMPT, 80.0)

    assert post.calls == []


def test_spawn_failure_is_swallowed(fake_backend):
    def broken_spawn(fn, *args):
        raise RuntimeError('no worker available')

    TeacherNotifier(fake_backend, 'https://x.test', spawn=broken_spawn).dispatch(ATTEMPT, 80.0)


def test_runs_through_spawn(fake_backend, monkeypatch):
    spawned = []
    notifier = TeacherNotifier(fake_backend, 'https://x.test',
                               spawn=lambda fn, *args: spawned.append((fn, args)))

    notifier.dispatch(ATTEMPT, 80.0)

    assert spawned == [(notifier.notify, (ATTEMPT, 80.0))]


def test_no_url_skips(fake_backend, monkeypatch):
    post = Recorder()
    monkeypatch.setattr(httpx, 'post', post)

    TeacherNotifier(fake_backend, '').dispatch(ATTEMPT, 80.0)

    assert post.calls == []
