"""
Route tests for the Flask API, using the Flask test client against a started
runtime whose transports are scripted.
"""
import pytest

from src.api.handlers import WorkbenchRuntime
from src.core.llm.model_profiles import PROVIDER_GEMINI, PROVIDER_CEREBRAS, PROVIDER_GPT_OSS
from src.core.queue import ChapterStatus
from translation_api import create_app
from helpers import ScriptedTransport, RecordingSleep

MODEL = 'gemini-2.5-flash'


@pytest.fixture
def runtime(state, monkeypatch):
    monkeypatch.setattr('src.api.handlers.USAGE_SYNC_ENABLED', False)
    transports = {
        PROVIDER_GEMINI: ScriptedTransport(PROVIDER_GEMINI),
        PROVIDER_CEREBRAS: ScriptedTransport(PROVIDER_CEREBRAS),
        PROVIDER_GPT_OSS: ScriptedTransport(PROVIDER_GPT_OSS),
    }
    workbench = WorkbenchRuntime(state, transports=transports, sleep=RecordingSleep())
    workbench.start(sync_usage=False)
    yield workbench
    workbench.shutdown()


@pytest.fixture
def app_and_socketio(runtime):
    app, socketio, _ = create_app(runtime)
    app.config['TESTING'] = True
    return app, socketio


@pytest.fixture
def client(app_and_socketio):
    return app_and_socketio[0].test_client()


def add_chapters(client, *titles):
    response = client.post('/api/chapters', json={
        'chapters': [{'title': t, 'content': f'Texte source de {t}.'} for t in titles]
    })
    assert response.status_code == 201
    return [c['unit_id'] for c in response.get_json()['chapters']]


class TestConfigRoutes:
    """Health, models, keys and notifications."""

    def test_health(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_models_include_caps_and_usage(self, client):
        models = {m['model']: m for m in client.get('/api/models').get_json()['models']}
        assert models[MODEL]['daily_limit'] == 250
        assert models[MODEL]['requests_per_minute'] == 10
        assert models[MODEL]['used_today'] == 0
        assert models[MODEL]['limit_reached'] is False

    def test_key_status(self, client):
        providers = {p['provider']: p for p in client.get('/api/keys').get_json()['providers']}
        assert set(providers) == {PROVIDER_GEMINI, PROVIDER_CEREBRAS, PROVIDER_GPT_OSS}
        assert providers[PROVIDER_GEMINI]['total'] == 1
        assert 'keys' not in providers[PROVIDER_GEMINI]

    def test_update_keys(self, client, runtime):
        response = client.put(f'/api/keys/{PROVIDER_GEMINI}', json={'keys': 'key-one-0001, key-two-0002'})
        assert response.status_code == 200
        assert response.get_json()['total'] == 2
        assert response.get_json()['current'] == 1
        assert runtime.transports[PROVIDER_GEMINI].key_pool.current() == 'key-one-0001'

    def test_update_keys_unknown_provider(self, client):
        assert client.put('/api/keys/unknown', json={'keys': ['k']}).status_code == 404

    def test_update_keys_bad_payload(self, client):
        assert client.put(f'/api/keys/{PROVIDER_GEMINI}', json={'keys': 42}).status_code == 400

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert 'error' in response.get_json()


class TestTranslationRoutes:
    """Chapters and translation jobs."""

    def test_add_chapters_validation(self, client):
        assert client.post('/api/chapters', json={}).status_code == 400
        assert client.post('/api/chapters', json={'chapters': ['text']}).status_code == 400

    def test_bulk_translation(self, client, runtime):
        add_chapters(client, 'Chapitre 1', 'Chapitre 2')

        response = client.post('/api/translate', json={'model': MODEL})
        assert response.status_code == 202
        assert response.get_json()['queued'] == 2

        runtime.wait_idle(timeout=5)

        chapters = client.get('/api/chapters').get_json()['chapters']
        assert [c['status'] for c in chapters] == ['completed', 'completed']
        assert chapters[0]['output_text'] == 'Translated Chapitre 1'

        status = client.get('/api/translate/status').get_json()
        assert status['is_processing'] is False
        assert status['chapters']['completed'] == 2

        models = {m['model']: m for m in client.get('/api/models').get_json()['models']}
        assert models[MODEL]['used_today'] == 2

        notifications = client.get('/api/notifications?since=0').get_json()['notifications']
        assert 'Started translating 2 chapter(s).' in [n['message'] for n in notifications]

    def test_only_selected_units(self, client, runtime):
        first, _ = add_chapters(client, 'A', 'B')

        response = client.post('/api/translate', json={'model': MODEL, 'unit_ids': [first]})
        assert response.get_json()['queued'] == 1
        runtime.wait_idle(timeout=5)

        assert runtime.status()['chapters'] == {'idle': 1, 'translating': 0, 'completed': 1, 'failed': 0}

    def test_nothing_to_translate(self, client):
        response = client.post('/api/translate', json={'model': MODEL})
        assert response.status_code == 200
        assert response.get_json()['queued'] == 0

    def test_invalid_options(self, client):
        response = client.post('/api/translate', json={'model': MODEL, 'temperature': 'hot'})
        assert response.status_code == 400

    def test_retry(self, client, runtime):
        unit_id, = add_chapters(client, 'A')
        client.post('/api/translate', json={'model': MODEL})
        runtime.wait_idle(timeout=5)

        response = client.post(f'/api/chapters/{unit_id}/retry', json={'model': MODEL})
        assert response.status_code == 202
        runtime.wait_idle(timeout=5)

        assert len(runtime.transports[PROVIDER_GEMINI].requests) == 2
        assert runtime.chapters.snapshot(unit_id)['status'] == 'completed'

    def test_retry_unknown_chapter(self, client):
        assert client.post('/api/chapters/missing/retry', json={'model': MODEL}).status_code == 404

    def test_manual_edit(self, client, runtime):
        unit_id, = add_chapters(client, 'A')

        response = client.patch(f'/api/chapters/{unit_id}', json={'output_text': 'Édité à la main'})
        assert response.status_code == 200
        assert response.get_json()['chapter']['output_text'] == 'Édité à la main'

        assert client.patch(f'/api/chapters/{unit_id}', json={}).status_code == 400
        assert client.patch('/api/chapters/missing', json={'output_text': 'x'}).status_code == 404

        runtime.chapters.get(unit_id).status = ChapterStatus.TRANSLATING
        assert client.patch(f'/api/chapters/{unit_id}', json={'output_text': 'x'}).status_code == 409

    def test_delete_chapter(self, client):
        unit_id, = add_chapters(client, 'A')
        assert client.delete(f'/api/chapters/{unit_id}').status_code == 200
        assert client.delete(f'/api/chapters/{unit_id}').status_code == 404

    def test_stop_when_idle(self, client):
        response = client.post('/api/translate/stop')
        assert response.get_json()['stopping'] is False

    def test_missing_configuration_is_reported(self, client, runtime):
        runtime.transports[PROVIDER_GEMINI].problem = 'No API keys configured for gemini.'
        add_chapters(client, 'A')

        response = client.post('/api/translate', json={'model': MODEL})

        assert response.get_json()['queued'] == 0
        notifications = client.get('/api/notifications').get_json()['notifications']
        assert notifications[-1]['type'] == 'error'


class TestGlossaryRoutes:
    """Terminology and codex."""

    def test_term_lifecycle(self, client):
        response = client.post('/api/terms', json={'original': 'Sect', 'translation': 'Secte'})
        assert response.status_code == 201
        term_id = response.get_json()['term']['term_id']

        assert client.post('/api/terms', json={'original': 'sect', 'translation': 'Clan'}).status_code == 400
        assert len(client.get('/api/terms').get_json()['terms']) == 1

        assert client.delete(f'/api/terms/{term_id}').status_code == 200
        assert client.delete(f'/api/terms/{term_id}').status_code == 404

    def test_term_import(self, client):
        response = client.post('/api/terms', json={
            'terms': [{'original': 'Dao', 'translation': 'Voie'},
                      {'original': 'Elder', 'translation': 'Ancien'}],
            'merge': False,
        })
        assert response.get_json()['total'] == 2

    def test_codex_entries(self, client):
        response = client.post('/api/codex/entries', json={
            'category': 'character', 'name': 'Lin Feng', 'translation': 'Lin Feng'})
        assert response.status_code == 200
        entry_id = response.get_json()['entry']['entry_id']

        codex = client.get('/api/codex').get_json()
        active = next(b for b in codex['books'] if b['book_id'] == codex['active_book_id'])
        assert [e['name'] for e in active['entries']] == ['Lin Feng']

        assert client.delete(f'/api/codex/entries/{entry_id}').status_code == 200
        assert client.post('/api/codex/entries', json={'name': ''}).status_code == 400

    def test_last_book_cannot_be_deleted(self, client):
        codex = client.get('/api/codex').get_json()
        assert client.delete(f"/api/codex/books/{codex['active_book_id']}").status_code == 400

    def test_glossary_reaches_the_prompt(self, client, runtime):
        client.post('/api/terms', json={'original': 'Sect', 'translation': 'Secte'})
        add_chapters(client, 'A')

        client.post('/api/translate', json={'model': MODEL, 'system_prompt': 'Translate into French.'})
        runtime.wait_idle(timeout=5)

        prompt = runtime.transports[PROVIDER_GEMINI].requests[0].system_prompt
        assert 'STRICT GLOSSARY' in prompt
        assert 'Translate into French.' in prompt


class TestWebSocket:
    """Socket.IO connection handshake."""

    def test_connect_sends_status(self, app_and_socketio):
        app, socketio = app_and_socketio
        socket_client = socketio.test_client(app)

        received = socket_client.get_received()
        assert received[0]['name'] == 'connected'
        assert received[0]['args'][0]['status']['is_processing'] is False
        socket_client.disconnect()
