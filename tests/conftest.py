"""Shared fixtures: an in-memory OneDrive speaking the HTTP API."""

import hashlib
import itertools
import threading
from urllib.parse import quote, unquote, urlparse, parse_qs

import pytest
import requests

from odmirror.onedrive_client import OneDriveClient
from odmirror.transport import DriveTransport

API_BASE = "https://api.test/v1.0"


class FakeResponse:
    """Just enough of requests.Response for the client code."""

    def __init__(self, status_code=200, json_data=None, content=b'', headers=None,
                 break_after=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}
        self.break_after = break_after
        self.closed = False

    @property
    def text(self):
        return str(self._json) if self._json is not None else self.content.decode('latin-1')

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def iter_content(self, chunk_size=1):
        limit = len(self.content) if self.break_after is None else self.break_after
        for start in range(0, limit, chunk_size):
            yield self.content[start:min(start + chunk_size, limit)]
        if self.break_after is not None:
            raise requests.exceptions.ChunkedEncodingError("Connection broken")

    def close(self):
        self.closed = True


class FakeDrive:
    """In-memory drive routing the requests a DriveTransport sends.

    Attributes useful for assertions:
        requests: (method, url, headers, kwargs) of every request
        chunk_puts: (session_url, start, end, total) of every chunk PUT
        range_requests: Range headers of every ranged download
    """

    def __init__(self, name='drive', api_base=API_BASE, page_size=100, with_hashes=True):
        self.name = name
        self.api_base = api_base
        self.page_size = page_size
        self.with_hashes = with_hashes
        self.verify = None
        self.folders = {'/'}
        self.files = {}
        self.sessions = {}
        self.requests = []
        self.chunk_puts = []
        self.range_requests = []
        self.status_queries = 0
        self.session_counter = itertools.count(1)
        self.lock = threading.Lock()

        # Failure injection
        self.reject_chunk_at = set()     # offsets whose first PUT gets 500
        self.always_reject_at = set()    # offsets whose every PUT gets 500
        self.break_download_after = {}   # path -> bytes served before the stream breaks
        self.status_override = None      # JSON returned by session status queries
        self.fail_create_folder = {}     # path -> status code
        self.fail_session_create = 0     # number of session creations to refuse
        self.fail_listing = {}           # path -> status code

    # -- tree helpers ------------------------------------------------------

    def add_folder(self, path):
        parts = [p for p in path.split('/') if p]
        for i in range(1, len(parts) + 1):
            self.folders.add('/' + '/'.join(parts[:i]))

    def add_file(self, path, data):
        parent = path.rsplit('/', 1)[0] or '/'
        self.add_folder(parent)
        self.files[path] = bytes(data)

    def children(self, path):
        prefix = '' if path == '/' else path
        names = []
        for candidate in sorted(self.folders | set(self.files)):
            if candidate != '/' and candidate.rsplit('/', 1)[0] == prefix:
                names.append(candidate)
        return names

    def record(self, path):
        name = path.rsplit('/', 1)[-1]
        parent = path.rsplit('/', 1)[0]
        data = {'name': name, 'parentReference': {'path': f"/drive/root:{quote(parent)}"}}
        if path in self.folders:
            data['folder'] = {'childCount': len(self.children(path))}
            data['size'] = 0
        else:
            content = self.files[path]
            data['size'] = len(content)
            data['file'] = {'mimeType': 'application/octet-stream'}
            if self.with_hashes:
                data['file']['hashes'] = {'sha1Hash': hashlib.sha1(content).hexdigest().upper()}
            data['@content.downloadUrl'] = f"https://download.test{quote(path)}"
        return data

    def exists(self, path):
        return path in self.folders or path in self.files

    # -- HTTP routing ------------------------------------------------------

    def request(self, method, url, headers=None, **kwargs):
        headers = dict(headers or {})
        with self.lock:
            self.requests.append((method, url, headers, kwargs))
            return self._route(method, url, headers, kwargs)

    def close(self):
        pass

    def _route(self, method, url, headers, kwargs):
        parsed = urlparse(url)
        if parsed.hostname == 'upload.test':
            return self._session_request(method, url, headers, kwargs)
        if parsed.hostname == 'download.test':
            return self._download(unquote(parsed.path), headers)

        path = unquote(parsed.path[len(urlparse(self.api_base).path):])
        query = parse_qs(parsed.query)
        if path == '/drive/root/children':
            item, action = '/', 'children'
        elif path == '/drive/root':
            item, action = '/', ''
        else:
            rest = path[len('/drive/root:'):]
            item, _, action = rest.partition(':/')

        if action == 'children' and method == 'GET':
            return self._list(item, int(query.get('page', ['0'])[0]))
        if action == 'children' and method == 'POST':
            return self._create_folder(item, kwargs['json'])
        if action == 'upload.createSession' and method == 'POST':
            return self._create_session(item)
        if action == 'content' and method == 'GET':
            if item not in self.files:
                return FakeResponse(404, {'error': {'code': 'itemNotFound'}})
            return FakeResponse(200, content=self.files[item],
                                break_after=self.break_download_after.pop(item, None))
        if action == 'content' and method == 'PUT':
            self.add_file(item, kwargs.get('data') or b'')
            return FakeResponse(201, self.record(item))
        if action == '' and method == 'GET':
            if not self.exists(item):
                return FakeResponse(404, {'error': {'code': 'itemNotFound'}})
            return FakeResponse(200, self.record(item))
        return FakeResponse(400, {'error': {'code': 'invalidRequest', 'message': f"{method} {url}"}})

    def _list(self, path, page):
        if path in self.fail_listing:
            return FakeResponse(self.fail_listing[path], {'error': {'code': 'generalException'}})
        if path not in self.folders:
            return FakeResponse(404, {'error': {'code': 'itemNotFound'}})
        names = self.children(path)
        start = page * self.page_size
        body = {'value': [self.record(n) for n in names[start:start + self.page_size]]}
        if start + self.page_size < len(names):
            endpoint = '/drive/root/children' if path == '/' else f"/drive/root:{path}:/children"
            body['@odata.nextLink'] = f"{self.api_base}{endpoint}?page={page + 1}"
        return FakeResponse(200, body)

    def _create_folder(self, parent, body):
        assert body['folder'] == {}
        assert body['@name.conflictBehavior'] == 'fail'
        path = (parent.rstrip('/') or '') + '/' + body['name']
        if path in self.fail_create_folder:
            return FakeResponse(self.fail_create_folder[path], {'error': {'code': 'accessDenied'}})
        if parent not in self.folders:
            return FakeResponse(404, {'error': {'code': 'itemNotFound'}})
        if self.exists(path):
            return FakeResponse(409, {'error': {'code': 'nameAlreadyExists'}})
        self.folders.add(path)
        return FakeResponse(201, self.record(path))

    def _create_session(self, path):
        if self.fail_session_create:
            self.fail_session_create -= 1
            return FakeResponse(503, {'error': {'code': 'serviceNotAvailable'}})
        url = f"https://upload.test/session/{next(self.session_counter)}"
        self.sessions[url] = {'path': path, 'data': bytearray(), 'done': False}
        return FakeResponse(200, {'uploadUrl': url, 'nextExpectedRanges': ['0-']})

    def _session_request(self, method, url, headers, kwargs):
        session = self.sessions.get(url)
        if session is None or session['done']:
            return FakeResponse(404, {'error': {'code': 'itemNotFound'}})
        if method == 'GET':
            self.status_queries += 1
            if self.status_override is not None:
                return FakeResponse(200, self.status_override)
            return FakeResponse(200, {'nextExpectedRanges': [f"{len(session['data'])}-"]})

        spec = headers['Content-Range'][len('bytes '):]
        span, total = spec.split('/')
        start, end = (int(x) for x in span.split('-'))
        total = int(total)
        data = kwargs['data']
        assert int(headers['Content-Length']) == len(data) == end - start + 1
        assert 'Authorization' not in headers
        self.chunk_puts.append((url, start, end, total))

        if start in self.reject_chunk_at or start in self.always_reject_at:
            self.reject_chunk_at.discard(start)
            return FakeResponse(500, {'error': {'code': 'generalException'}})
        if start != len(session['data']):
            return FakeResponse(416, {'error': {'code': 'invalidRange'}})

        session['data'].extend(data)
        if len(session['data']) == total:
            session['done'] = True
            self.add_file(session['path'], session['data'])
            return FakeResponse(201, self.record(session['path']))
        return FakeResponse(202, {'nextExpectedRanges': [f"{len(session['data'])}-"]})

    def _download(self, path, headers):
        if path not in self.files:
            return FakeResponse(404)
        content = self.files[path]
        byte_range = headers.get('Range')
        if not byte_range:
            return FakeResponse(200, content=content)
        self.range_requests.append(byte_range)
        first, last = byte_range[len('bytes='):].split('-')
        return FakeResponse(206, content=content[int(first):int(last) + 1])


def make_client(drive, name=None):
    """OneDriveClient talking to a FakeDrive without credentials."""
    transport = DriveTransport(None, drive.api_base, session=drive)
    return OneDriveClient(transport, name or drive.name)


@pytest.fixture
def source_drive():
    return FakeDrive('source')


@pytest.fixture
def dest_drive():
    return FakeDrive('destination')


@pytest.fixture
def source(source_drive):
    return make_client(source_drive)


@pytest.fixture
def destination(dest_drive):
    return make_client(dest_drive)
