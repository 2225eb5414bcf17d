"""
Tests for the HTTP API server.
"""

import asyncio

from aiohttp import test_utils

from interview_analyzer.analysis_manager import AnalysisManager
from interview_analyzer.api_server import AnalysisAPIServer


def call(manager, method, path, **kwargs):
    """Issue one request against an in-process server; returns (status, headers, body)."""
    async def run():
        server = AnalysisAPIServer(manager)
        async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
            response = await client.request(method, path, **kwargs)
            return response.status, response.headers, await response.json()

    return asyncio.run(run())


class TestAnalysisAPIServer:
    def test_health(self, fast_config, classifier):
        status, headers, body = call(AnalysisManager(fast_config, classifier), 'GET', '/health')

        assert status == 200
        assert body['status'] == 'healthy'
        assert body['analyzing'] is False
        assert headers['Access-Control-Allow-Origin'] == '*'

    def test_analysis(self, fast_config, classifier):
        manager = AnalysisManager(fast_config, classifier)
        manager.emotion_analyzer.record('happiness', timestamp=1)

        status, _, body = call(manager, 'GET', '/api/analysis')

        assert status == 200
        assert body['success'] is True
        assert body['data']['emotionAnalysis']['primary'] == 'happiness'
        assert body['data']['emotionAnalysis']['timeline'] == [{'emotion': 'happiness', 'timestamp': 1}]

    def test_stress(self, fast_config, classifier):
        status, _, body = call(AnalysisManager(fast_config, classifier), 'GET', '/api/stress')

        assert status == 200
        assert body['data']['current'] == {'stress': False, 'confidence': 0.0, 'features': []}
        assert body['data']['stats']['totalDetections'] == 0
        assert body['data']['calibrationProgress'] == 0
        assert body['data']['baselineReady'] is False
        assert body['data']['detecting'] is False

    def test_speech(self, fast_config, classifier):
        manager = AnalysisManager(fast_config, classifier)

        status, _, body = call(manager, 'POST', '/api/speech', json={'text': 'hello there world'})

        assert status == 200
        assert body['data'] == {'wordCount': 3}
        assert manager.tone_analyzer.word_count == 3

    def test_speech_rejects_bad_input(self, fast_config, classifier):
        manager = AnalysisManager(fast_config, classifier)

        status, _, body = call(manager, 'POST', '/api/speech', json={'text': 5})
        assert status == 400
        assert body['success'] is False

        status, _, body = call(manager, 'POST', '/api/speech', data='not json',
                               headers={'Content-Type': 'application/json'})
        assert status == 400

        status, _, _ = call(manager, 'POST', '/api/speech', json=['text'])
        assert status == 400

    def test_answer_record(self, fast_config, classifier):
        manager = AnalysisManager(fast_config, classifier)

        status, _, body = call(manager, 'POST', '/api/answer-record',
                               json={'question': 'Tell me about yourself', 'answer': 'I build things'})

        assert status == 200
        record = body['data']
        assert record['question'] == 'Tell me about yourself'
        assert record['user_ans'] == 'I build things'
        assert record['stressAnalysis']['timeline'] == []
        assert record['toneAnalysis']['confidence'] == 'authoritative'

    def test_answer_record_requires_fields(self, fast_config, classifier):
        status, _, body = call(AnalysisManager(fast_config, classifier), 'POST',
                               '/api/answer-record', json={'question': 'Why?'})

        assert status == 400
        assert 'answer' in body['error']
