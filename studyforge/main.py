"""Quart application for StudyForge.

HTTP surface over the retrieval core: PDF upload, document management,
chat over a document, and study artifact generation.
"""
from functools import wraps
from typing import Any, Dict, Optional, Tuple

import structlog
from quart import Blueprint, Quart, current_app, jsonify, request

from studyforge import __version__, config
from studyforge.cache import canonical_json, make_key
from studyforge.errors import (
    ConfigurationError,
    NotFoundError,
    ParseError,
    ProviderError,
    StorageError,
    StudyForgeError,
)
from studyforge.generation import TaskType
from studyforge.logging_config import setup_logging
from studyforge.services import Services, build_services

logger = structlog.get_logger()

API_NAMESPACE = "api"

STATUS_CODES = {
    ConfigurationError: 400,
    ParseError: 400,
    NotFoundError: 404,
    ProviderError: 502,
    StorageError: 503,
}

api = Blueprint("api", __name__)


def get_services() -> Services:
    return current_app.extensions["studyforge"]


def error_response(message: str, status_code: int):
    return jsonify({"error": {"message": message}}), status_code


async def read_json_body() -> Dict[str, Any]:
    data = await request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Request body must be a JSON object")
    return data


def require_doc_id(body: Dict[str, Any]) -> str:
    doc_id = body.get("docId")
    if not doc_id or not isinstance(doc_id, str):
        raise ConfigurationError("docId is required")
    return doc_id


def cached_json(ttl: Optional[float] = None):
    """Cache a view's JSON payload in the shared cache.

    The key is built from the document id, the route and the canonical JSON
    body, so deleting a document can drop its cached responses.
    """

    def decorator(view):
        @wraps(view)
        async def wrapper(*args, **kwargs):
            services = get_services()
            body = await read_json_body()
            key = make_key(
                API_NAMESPACE, body.get("docId"), request.path, canonical_json(body)
            )

            cached = services.cache.get(key)
            if cached is not None:
                logger.info("api_cache_hit", path=request.path)
                return jsonify(cached)

            logger.debug("api_cache_miss", path=request.path)
            payload = await view(*args, **kwargs)
            services.cache.set(key, payload, ttl or config.API_CACHE_TTL)
            return jsonify(payload)

        return wrapper

    return decorator


@api.route("/api/upload", methods=["POST"])
async def upload():
    """Upload and ingest a PDF document.

    Expects multipart form data with a ``file`` field.

    Returns JSON (201):
    {
        "success": true,
        "message": "...",
        "documentId": "uuid",
        "chunks": 12
    }
    """
    files = await request.files
    upload_file = files.get("file")
    if upload_file is None:
        return error_response("No file uploaded", 400)

    filename = upload_file.filename or "document.pdf"
    is_pdf = upload_file.mimetype == "application/pdf" or filename.lower().endswith(".pdf")
    if not is_pdf:
        return error_response("Only PDF files are allowed", 400)

    data = upload_file.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        return error_response("File too large", 413)

    logger.info("upload_received", filename=filename, size_bytes=len(data))

    result = await get_services().ingest.ingest_pdf(data, filename)

    return jsonify({
        "success": True,
        "message": "Document uploaded and processed successfully",
        "documentId": result.document_id,
        "chunks": result.chunk_count,
    }), 201


@api.route("/api/documents", methods=["GET"])
async def list_documents():
    documents = await get_services().db.list_documents()
    return jsonify({"documents": documents})


@api.route("/api/documents/<document_id>", methods=["DELETE"])
async def delete_document(document_id: str):
    """Delete a document, its chunks, artifacts and cached results."""
    services = get_services()
    deleted = await services.vector_store.delete_document(document_id)
    if not deleted:
        raise NotFoundError("Document not found", detail=document_id)

    services.cache.delete_prefix(make_key(API_NAMESPACE, document_id, ""))
    return "", 204


@api.route("/api/documents/<document_id>/artifacts", methods=["GET"])
async def list_artifacts(document_id: str):
    services = get_services()
    if await services.db.get_document(document_id) is None:
        raise NotFoundError("Document not found", detail=document_id)
    artifacts = await services.db.list_artifacts(document_id)
    return jsonify({"artifacts": artifacts})


@api.route("/api/chat", methods=["POST"])
async def chat():
    """Answer a question about a document.

    Expects JSON body:
    {
        "docId": "uuid",
        "message": "user question"
    }

    Returns JSON:
    {
        "response": "assistant answer",
        "docId": "uuid"
    }
    """
    services = get_services()
    body = await read_json_body()
    doc_id = require_doc_id(body)

    message = body.get("message") or ""
    if not isinstance(message, str):
        raise ConfigurationError("message must be a string")
    message = message.strip()
    if not message:
        return error_response("Message cannot be empty", 400)
    if len(message) > config.MAX_MESSAGE_LENGTH:
        return error_response(
            f"Message too long (max {config.MAX_MESSAGE_LENGTH} characters)", 400
        )

    logger.info("chat_request_received", doc_id=doc_id, message_length=len(message))

    context = await services.context.get_context(
        doc_id, services.context.top_k(message)
    )
    answer = await services.generator.generate(
        context, TaskType.CHAT, {"question": message}
    )

    logger.info("chat_response_sent", doc_id=doc_id, response_length=len(answer.answer))
    return jsonify({"response": answer.answer, "docId": doc_id})


def generation_parameters(task: TaskType, body: Dict[str, Any]) -> Dict[str, Any]:
    """Map the camelCase request fields onto task parameters."""
    if task is TaskType.QUIZ:
        return {
            "difficulty": body.get("difficulty", "medium"),
            "question_count": body.get("questionCount", 5),
        }
    if task is TaskType.FLASHCARDS:
        return {"card_count": body.get("cardCount", 10)}
    return {}


@api.route("/api/generate/<task>", methods=["POST"])
@cached_json()
async def generate(task: str) -> Dict[str, Any]:
    """Generate a syllabus, quiz or flashcards from a document.

    Expects JSON body with ``docId`` and optional task options
    (``difficulty``, ``questionCount`` for quizzes; ``cardCount`` for
    flashcards).
    """
    try:
        task_type = TaskType(task)
    except ValueError:
        raise NotFoundError(f"Unknown generation task: {task}") from None
    if task_type is TaskType.CHAT:
        raise NotFoundError("Use /api/chat for questions")

    services = get_services()
    body = await read_json_body()
    doc_id = require_doc_id(body)

    context = await services.context.get_context(doc_id, services.context.first_chunks())
    result = await services.generator.generate(
        context, task_type, generation_parameters(task_type, body)
    )

    payload = result.model_dump()
    artifact_id = await services.db.insert_artifact(doc_id, task_type.value, payload)
    return {"success": True, "data": payload, "artifactId": artifact_id}


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive", "version": __version__}), 200


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check the provider is reachable."""
    services = get_services()
    checks: Dict[str, Any] = {
        "status": "healthy",
        "provider": services.chat_backend.name,
        "provider_reachable": False,
        "cache": services.cache.stats(),
    }

    try:
        await services.chat_backend.list_models()
        checks["provider_reachable"] = True
        return jsonify(checks), 200
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)
        return jsonify(checks), 503


def status_for(error: StudyForgeError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(services: Optional[Services] = None) -> Quart:
    """Build the Quart app around one set of shared services.

    Args:
        services: Pre-built services (tests); built from config otherwise
    """
    setup_logging(config.LOG_LEVEL, json_logs=config.LOG_JSON)

    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES
    app.extensions["studyforge"] = services or build_services()
    app.register_blueprint(api)

    @app.before_serving
    async def startup() -> None:
        await app.extensions["studyforge"].start()

    @app.after_serving
    async def shutdown() -> None:
        await app.extensions["studyforge"].stop()

    @app.errorhandler(StudyForgeError)
    async def handle_app_error(error: StudyForgeError) -> Tuple[Any, int]:
        status_code = status_for(error)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "request_failed",
            path=request.path,
            error=error.message,
            error_type=type(error).__name__,
            status_code=status_code,
        )
        return jsonify({"error": error.to_dict()}), status_code

    @app.errorhandler(404)
    async def not_found(error):
        return error_response("Route not found", 404)

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return error_response("Internal server error", 500)

    return app


if __name__ == "__main__":
    # For development - use scripts/serve.py (hypercorn) in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
