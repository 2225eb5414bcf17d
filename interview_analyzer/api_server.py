"""
API Server for the Interview Analyzer
Exposes live analysis snapshots over HTTP so the interview front end can poll
them and push transcribed speech back in.
"""

import json
import logging
import time
from typing import Any, Dict

from aiohttp import web, web_request
from aiohttp.web_response import Response

from .analysis_manager import AnalysisManager
from .models import build_answer_record

logger = logging.getLogger(__name__)


@web.middleware
async def cors_middleware(request: web_request.Request, handler) -> Response:
    response = await handler(request)
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


def _error(message: str, status: int) -> Response:
    return web.json_response({"success": False, "error": message}, status=status)


async def _read_json(request: web_request.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


class AnalysisAPIServer:
    """HTTP API server over a running AnalysisManager"""

    def __init__(self, manager: AnalysisManager, host: str = '0.0.0.0', port: int = 8083):
        self.manager = manager
        self.host = host
        self.port = port
        self.app = None
        self.runner = None
        self.site = None
        self.session_start_time = time.time()

    async def health_check_handler(self, request: web_request.Request) -> Response:
        """Health check endpoint"""
        return web.json_response({
            "status": "healthy",
            "service": "Interview Analyzer API",
            "analyzing": self.manager.is_active(),
            "timestamp": time.time(),
            "session_duration": time.time() - self.session_start_time
        })

    async def get_analysis_handler(self, request: web_request.Request) -> Response:
        """Current snapshot of all four analyzers"""
        try:
            results = self.manager.get_analysis_results()
            return web.json_response({
                "success": True,
                "data": results.to_dict(),
                "timestamp": time.time()
            })
        except Exception as e:
            logger.error(f"Error getting analysis results: {e}")
            return _error(f"Failed to get analysis results: {e}", 500)

    async def get_stress_handler(self, request: web_request.Request) -> Response:
        """Smoothed stress level plus calibration and detection state"""
        try:
            stress = self.manager.stress_analyzer
            data = {
                "current": stress.get_current_stress_level().to_dict(),
                "stats": stress.get_detection_stats().to_dict(),
                "calibrationProgress": stress.get_calibration_progress(),
                "baselineReady": stress.is_baseline_ready(),
                "calibrating": stress.is_calibration_active(),
                "detecting": stress.is_detection_active(),
            }
            return web.json_response({"success": True, "data": data})
        except Exception as e:
            logger.error(f"Error getting stress data: {e}")
            return _error(f"Failed to get stress data: {e}", 500)

    async def update_speech_handler(self, request: web_request.Request) -> Response:
        """Push the transcript so far; used for speaking speed"""
        try:
            body = await _read_json(request)
        except ValueError as e:
            return _error(str(e), 400)

        text = body.get("text")
        if not isinstance(text, str):
            return _error("Field 'text' must be a string", 400)

        self.manager.update_speech_text(text)
        return web.json_response({
            "success": True,
            "data": {"wordCount": self.manager.tone_analyzer.word_count}
        })

    async def answer_record_handler(self, request: web_request.Request) -> Response:
        """Per-answer record embedding the current snapshots"""
        try:
            body = await _read_json(request)
        except ValueError as e:
            return _error(str(e), 400)

        question = body.get("question")
        answer = body.get("answer")
        if not isinstance(question, str) or not isinstance(answer, str):
            return _error("Fields 'question' and 'answer' must be strings", 400)

        record = build_answer_record(question, answer, self.manager.get_analysis_results())
        return web.json_response({"success": True, "data": record})

    def create_app(self) -> web.Application:
        """Create the HTTP API application"""
        app = web.Application(middlewares=[cors_middleware])

        app.router.add_get('/health', self.health_check_handler)
        app.router.add_get('/api/analysis', self.get_analysis_handler)
        app.router.add_get('/api/stress', self.get_stress_handler)
        app.router.add_post('/api/speech', self.update_speech_handler)
        app.router.add_post('/api/answer-record', self.answer_record_handler)

        return app

    async def start(self):
        """Start the API server"""
        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"Interview Analyzer API server started on port {self.port}")
        logger.info("Available endpoints:")
        logger.info("  GET  /health")
        logger.info("  GET  /api/analysis")
        logger.info("  GET  /api/stress")
        logger.info("  POST /api/speech")
        logger.info("  POST /api/answer-record")

    async def stop(self):
        """Stop the API server"""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Interview Analyzer API server stopped")
